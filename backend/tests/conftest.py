"""
Pytest fixtures for posengine tests.

Builds the app against in-memory SQLite: one store per tenant (tenant_a,
tenant_b), each provisioned with the full schema. Service tests run inside
the tenant_a scope; reference data comes from the factory fixtures below.
"""

import itertools
from decimal import Decimal

import pytest

from posengine import create_app
from posengine.extensions import db
from posengine.models import (
    Branch,
    BranchInventory,
    Currency,
    Customer,
    Discount,
    PaymentMethod,
    ProductCategory,
    Product,
    Till,
)
from posengine.models.reference import TAX_MODE_EXCLUSIVE
from posengine.services.payment_service import PaymentRequest
from posengine.services.settings_service import get_tenant_settings
from posengine.services.tenant_service import provision_tenant_store, tenant_scope

TENANT_A = "tenant_a"
TENANT_B = "tenant_b"

CASHIER_ID = 101
SUPERVISOR_ID = 201


@pytest.fixture()
def app():
    """Create application for testing."""
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "TENANT_STORES": {TENANT_A: "sqlite://", TENANT_B: "sqlite://"},
        "LOG_LEVEL": "WARNING",
    })

    with app.app_context():
        provision_tenant_store(TENANT_A)
        provision_tenant_store(TENANT_B)
        yield app


@pytest.fixture()
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture()
def tenant_a(app):
    """Session routed to tenant_a's store for the whole test."""
    with tenant_scope(TENANT_A):
        yield db.session


# =============================================================================
# REFERENCE DATA
# =============================================================================

@pytest.fixture()
def branch(tenant_a):
    branch = Branch(name="Main Branch", code="MAIN", is_active=True)
    tenant_a.add(branch)
    tenant_a.commit()
    return branch


@pytest.fixture()
def base_currency(tenant_a):
    currency = Currency(code="USD", name="US Dollar", exchange_rate=Decimal("1"), is_default=True)
    tenant_a.add(currency)
    tenant_a.commit()
    return currency


@pytest.fixture()
def foreign_currency(tenant_a):
    """1 EUR = 1.5 base."""
    currency = Currency(code="EUR", name="Euro", exchange_rate=Decimal("1.5"), is_default=False)
    tenant_a.add(currency)
    tenant_a.commit()
    return currency


@pytest.fixture()
def cash_method(tenant_a):
    method = PaymentMethod(name="Cash")
    tenant_a.add(method)
    tenant_a.commit()
    return method


@pytest.fixture()
def card_method(tenant_a):
    method = PaymentMethod(name="Card")
    tenant_a.add(method)
    tenant_a.commit()
    return method


@pytest.fixture()
def settings(tenant_a, branch, base_currency, cash_method):
    """Tenant settings: tax exclusive at 0%, USD base, Cash as the cash method."""
    settings = get_tenant_settings()
    settings.tax_mode = TAX_MODE_EXCLUSIVE
    settings.tax_rate_bps = 0
    settings.base_currency_id = base_currency.id
    settings.cash_payment_method_id = cash_method.id
    tenant_a.commit()
    return settings


@pytest.fixture()
def customer(tenant_a, branch):
    customer = Customer(branch_id=branch.id, name="Jane Buyer", phone="555-0100")
    tenant_a.add(customer)
    tenant_a.commit()
    return customer


@pytest.fixture()
def till(tenant_a, branch):
    till = Till(branch_id=branch.id, name="Till 1")
    tenant_a.add(till)
    tenant_a.commit()
    return till


@pytest.fixture()
def category(tenant_a):
    category = ProductCategory(name="Hardware")
    tenant_a.add(category)
    tenant_a.commit()
    return category


@pytest.fixture()
def make_product(tenant_a, branch):
    """
    Factory: make_product(price_cents, stock=10, cost_cents=0, category=None).

    stock=None creates the product without a branch inventory row.
    """
    counter = itertools.count(1)

    def _make(price_cents=10_000, *, stock=10, cost_cents=0, category=None, is_active=True):
        n = next(counter)
        product = Product(
            sku=f"SKU-{n:04d}",
            name=f"Product {n}",
            price_cents=price_cents,
            cost_cents=cost_cents,
            category_id=category.id if category else None,
            is_active=is_active,
        )
        tenant_a.add(product)
        tenant_a.flush()
        if stock is not None:
            tenant_a.add(BranchInventory(branch_id=branch.id, product_id=product.id, quantity=stock))
        tenant_a.commit()
        return product

    return _make


@pytest.fixture()
def make_discount(tenant_a, branch):
    def _make(percentage_bps, *, is_active=True):
        discount = Discount(
            branch_id=branch.id,
            name=f"{percentage_bps / 100:g}% off",
            percentage_bps=percentage_bps,
            is_active=is_active,
        )
        tenant_a.add(discount)
        tenant_a.commit()
        return discount

    return _make


@pytest.fixture()
def cash(base_currency, cash_method):
    """Factory for a cash PaymentRequest in base currency."""
    def _make(amount_cents, **kwargs):
        return PaymentRequest(
            amount_cents=amount_cents,
            currency_id=base_currency.id,
            payment_method_id=cash_method.id,
            **kwargs,
        )

    return _make


def stock_of(product, branch) -> int:
    row = db.session.query(BranchInventory).filter_by(branch_id=branch.id, product_id=product.id).one()
    db.session.refresh(row)
    return row.quantity
