"""
Quotation workflow tests: lazy expiry, price-locked conversion and recreation.
"""

from datetime import timedelta

import pytest

from posengine.errors import InvalidStateTransition, ValidationError
from posengine.models.sales import (
    LAYBY_DRAFT,
    QUOTATION_ACCEPTED,
    QUOTATION_DRAFT,
    QUOTATION_EXPIRED,
    QUOTATION_REJECTED,
    QUOTATION_SENT,
    SALE_DRAFT,
)
from posengine.services import quotation_service
from posengine.services.cart_service import CartItem
from posengine.time_utils import utcnow

from conftest import CASHIER_ID, stock_of


@pytest.fixture()
def make_quotation(settings, branch, customer, make_product):
    def _make(price_cents=5000, quantity=2, send=True, **kwargs):
        product = make_product(price_cents, stock=10)
        quotation = quotation_service.create_quotation(
            branch_id=branch.id,
            customer_id=customer.id,
            items=[CartItem(product.id, quantity)],
            actor_id=CASHIER_ID,
            **kwargs,
        )
        if send:
            quotation = quotation_service.send_quotation(quotation.id, CASHIER_ID)
        return quotation, product

    return _make


@pytest.fixture()
def travel(monkeypatch):
    """Move quotation_service's clock forward by ``days``."""
    def _travel(days):
        later = utcnow() + timedelta(days=days)
        monkeypatch.setattr(quotation_service, "utcnow", lambda: later)

    return _travel


def test_create_uses_default_validity(tenant_a, make_quotation, branch):
    quotation, product = make_quotation(send=False)

    assert quotation.quotation_number.startswith("QT")
    assert quotation.status == QUOTATION_DRAFT
    assert quotation.expiry_date - quotation.quotation_date == timedelta(days=30)
    assert quotation.total_cents == 10_000
    # Quotations never touch stock
    assert stock_of(product, branch) == 10


def test_explicit_validity_days(tenant_a, make_quotation):
    quotation, _ = make_quotation(send=False, validity_days=7)
    assert quotation.expiry_date - quotation.quotation_date == timedelta(days=7)

    with pytest.raises(ValidationError):
        make_quotation(send=False, validity_days=0)


def test_sent_quotation_expires_lazily_and_idempotently(tenant_a, make_quotation, travel):
    quotation, _ = make_quotation(validity_days=10)
    assert quotation.status == QUOTATION_SENT

    travel(9)
    assert quotation_service.get_quotation(quotation.id).status == QUOTATION_SENT

    travel(11)
    assert quotation_service.get_quotation(quotation.id).status == QUOTATION_EXPIRED
    assert quotation_service.get_quotation(quotation.id).status == QUOTATION_EXPIRED

    rows, total = quotation_service.list_quotations(status=QUOTATION_SENT)
    assert total == 0
    assert rows == []


def test_list_expires_before_filtering(tenant_a, make_quotation, travel):
    stale, _ = make_quotation(validity_days=1)
    fresh, _ = make_quotation(validity_days=60)

    travel(2)
    rows, total = quotation_service.list_quotations(status=QUOTATION_EXPIRED)

    assert total == 1
    assert rows[0].id == stale.id
    assert quotation_service.get_quotation(fresh.id).status == QUOTATION_SENT


def test_draft_quotation_does_not_expire(tenant_a, make_quotation, travel):
    quotation, _ = make_quotation(send=False, validity_days=1)

    travel(5)

    assert quotation_service.get_quotation(quotation.id).status == QUOTATION_DRAFT


def test_convert_to_sale_keeps_quoted_prices(tenant_a, make_quotation, branch):
    quotation, product = make_quotation(price_cents=5000, quantity=2)
    product.price_cents = 9000
    tenant_a.commit()

    quotation, sale = quotation_service.convert_to_sale(quotation.id, CASHIER_ID)

    assert quotation.status == QUOTATION_ACCEPTED
    assert quotation.converted_to_sale_id == sale.id
    assert sale.status == SALE_DRAFT
    assert sale.quotation_id == quotation.id
    assert sale.items[0].unit_price_cents == 5000
    assert sale.total_cents == quotation.total_cents == 10_000
    assert sale.notes.startswith(f"Converted from quotation {quotation.quotation_number}")
    # The sale is a draft: no stock moves yet
    assert stock_of(product, branch) == 10


def test_convert_to_layby(tenant_a, make_quotation):
    quotation, _ = make_quotation()

    quotation, layby = quotation_service.convert_to_layby(quotation.id, CASHIER_ID)

    assert quotation.status == QUOTATION_ACCEPTED
    assert quotation.converted_to_layby_id == layby.id
    assert layby.status == LAYBY_DRAFT
    assert layby.quotation_id == quotation.id
    assert layby.total_cents == quotation.total_cents


def test_convert_requires_sent(tenant_a, make_quotation):
    quotation, _ = make_quotation(send=False)

    with pytest.raises(InvalidStateTransition):
        quotation_service.convert_to_sale(quotation.id, CASHIER_ID)


def test_converted_quotation_cannot_convert_again(tenant_a, make_quotation):
    quotation, _ = make_quotation()
    quotation_service.convert_to_sale(quotation.id, CASHIER_ID)

    with pytest.raises(InvalidStateTransition):
        quotation_service.convert_to_layby(quotation.id, CASHIER_ID)


def test_expired_quotation_cannot_convert(tenant_a, make_quotation, travel):
    quotation, _ = make_quotation(validity_days=1)

    travel(2)
    with pytest.raises(InvalidStateTransition):
        quotation_service.convert_to_sale(quotation.id, CASHIER_ID)


def test_recreate_uses_current_prices(tenant_a, make_quotation, travel):
    expired, product = make_quotation(price_cents=5000, quantity=2, validity_days=1, notes="Site B")
    product.price_cents = 6000
    tenant_a.commit()

    travel(2)
    fresh = quotation_service.recreate_quotation(expired.id, CASHIER_ID)

    assert fresh.id != expired.id
    assert fresh.status == QUOTATION_DRAFT
    assert fresh.recreated_from_id == expired.id
    assert fresh.items[0].quantity == 2
    assert fresh.items[0].unit_price_cents == 6000
    assert fresh.total_cents == 12_000
    assert fresh.notes == (
        f"Recreated from expired quotation {expired.quotation_number}. Original notes: Site B"
    )
    assert quotation_service.get_quotation(expired.id).status == QUOTATION_EXPIRED


def test_recreate_requires_expired(tenant_a, make_quotation):
    quotation, _ = make_quotation()

    with pytest.raises(InvalidStateTransition):
        quotation_service.recreate_quotation(quotation.id, CASHIER_ID)


def test_reject_appends_reason(tenant_a, make_quotation):
    quotation, _ = make_quotation(notes="Bulk order")

    rejected = quotation_service.reject_quotation(quotation.id, "Too expensive")

    assert rejected.status == QUOTATION_REJECTED
    assert rejected.notes == "Bulk order. Rejection reason: Too expensive"


def test_update_only_while_draft(tenant_a, make_quotation, make_product):
    quotation, _ = make_quotation(send=False)
    other = make_product(250)

    updated = quotation_service.update_quotation(quotation.id, items=[CartItem(other.id, 4)])
    assert updated.total_cents == 1000

    quotation_service.send_quotation(quotation.id, CASHIER_ID)
    with pytest.raises(InvalidStateTransition):
        quotation_service.update_quotation(quotation.id, notes="edit")

