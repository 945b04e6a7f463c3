"""
HTTP API tests: tenant/actor headers, error bodies and a sale end to end.
"""

from decimal import Decimal

import pytest

from posengine.extensions import db
from posengine.models import Branch, BranchInventory, Currency, Customer, PaymentMethod, Product, Till
from posengine.services.settings_service import get_tenant_settings
from posengine.services.tenant_service import tenant_scope

from conftest import CASHIER_ID, TENANT_A, TENANT_B


def _headers(tenant=TENANT_A, actor=CASHIER_ID):
    headers = {"X-Tenant-ID": tenant}
    if actor is not None:
        headers["X-Actor-Id"] = str(actor)
    return headers


@pytest.fixture()
def seeded(app):
    """Reference data in tenant_a; returns plain ids."""
    with tenant_scope(TENANT_A):
        branch = Branch(name="Main", code="MAIN")
        currency = Currency(code="USD", name="US Dollar", exchange_rate=Decimal("1"), is_default=True)
        cash = PaymentMethod(name="Cash")
        db.session.add_all([branch, currency, cash])
        db.session.flush()

        customer = Customer(branch_id=branch.id, name="Jane Buyer")
        till = Till(branch_id=branch.id, name="Till 1")
        product = Product(sku="SKU-1", name="Widget", price_cents=2500, cost_cents=1000)
        db.session.add_all([customer, till, product])
        db.session.flush()
        db.session.add(BranchInventory(branch_id=branch.id, product_id=product.id, quantity=3))

        settings = get_tenant_settings()
        settings.base_currency_id = currency.id
        settings.cash_payment_method_id = cash.id
        db.session.commit()

        return {
            "branch_id": branch.id,
            "currency_id": currency.id,
            "cash_id": cash.id,
            "customer_id": customer.id,
            "till_id": till.id,
            "product_id": product.id,
        }


def _create_sale(client, seeded, quantity=2):
    return client.post(
        "/api/sales/credit",
        json={
            "branch_id": seeded["branch_id"],
            "customer_id": seeded["customer_id"],
            "items": [{"product_id": seeded["product_id"], "quantity": quantity}],
        },
        headers=_headers(),
    )


# =============================================================================
# HEADERS
# =============================================================================

def test_missing_tenant_header(client):
    response = client.get("/api/sales")
    assert response.status_code == 400


def test_unknown_tenant(client):
    response = client.get("/api/sales", headers={"X-Tenant-ID": "nope"})
    assert response.status_code == 404
    assert response.get_json()["code"] == "NOT_FOUND"


def test_malformed_actor(client):
    response = client.get("/api/sales", headers={"X-Tenant-ID": TENANT_A, "X-Actor-Id": "abc"})
    assert response.status_code == 400


def test_mutation_requires_actor(client, seeded):
    response = client.post(
        "/api/sales/credit",
        json={"branch_id": seeded["branch_id"], "customer_id": seeded["customer_id"], "items": []},
        headers=_headers(actor=None),
    )
    assert response.status_code == 400


# =============================================================================
# ERRORS
# =============================================================================

def test_validation_error_body(client, seeded):
    response = client.post(
        "/api/sales/credit",
        json={"branch_id": seeded["branch_id"], "customer_id": seeded["customer_id"], "items": []},
        headers=_headers(),
    )

    assert response.status_code == 400
    body = response.get_json()
    assert body["code"] == "VALIDATION_ERROR"
    assert "error" in body


def test_decimal_quantity_rejected(client, seeded):
    response = client.post(
        "/api/sales/credit",
        json={
            "branch_id": seeded["branch_id"],
            "customer_id": seeded["customer_id"],
            "items": [{"product_id": seeded["product_id"], "quantity": 1.5}],
        },
        headers=_headers(),
    )
    assert response.status_code == 400


def test_not_found(client, seeded):
    response = client.get("/api/sales/999", headers=_headers())
    assert response.status_code == 404
    assert response.get_json()["code"] == "NOT_FOUND"


def test_insufficient_stock_is_conflict(client, seeded):
    sale_id = _create_sale(client, seeded, quantity=5).get_json()["sale"]["id"]

    response = client.post(f"/api/sales/{sale_id}/confirm", headers=_headers())

    assert response.status_code == 409
    body = response.get_json()
    assert body["code"] == "INSUFFICIENT_STOCK"
    assert body["details"]["items"][0]["available"] == 3


# =============================================================================
# FLOWS
# =============================================================================

def test_credit_sale_flow(client, seeded):
    created = _create_sale(client, seeded)
    assert created.status_code == 201
    sale = created.get_json()["sale"]
    assert sale["status"] == "draft"
    assert sale["total_cents"] == 5000

    confirmed = client.post(f"/api/sales/{sale['id']}/confirm", headers=_headers())
    assert confirmed.status_code == 200
    assert confirmed.get_json()["sale"]["status"] == "confirmed"

    paid = client.post(
        f"/api/sales/{sale['id']}/payments",
        json={"amount_cents": 5000, "currency_id": seeded["currency_id"], "payment_method_id": seeded["cash_id"]},
        headers=_headers(),
    )
    assert paid.status_code == 201
    body = paid.get_json()
    assert body["sale"]["status"] == "fully_paid"
    assert body["payment"]["receipt_number"].startswith("RCP")

    stock = client.get(
        f"/api/inventory/branches/{seeded['branch_id']}/products/{seeded['product_id']}",
        headers=_headers(),
    )
    assert stock.get_json()["inventory"]["quantity"] == 1


def test_update_draft_sale(client, seeded):
    sale_id = _create_sale(client, seeded, quantity=2).get_json()["sale"]["id"]

    response = client.put(
        f"/api/sales/{sale_id}",
        json={"items": [{"product_id": seeded["product_id"], "quantity": 1}], "notes": "one only"},
        headers=_headers(),
    )

    assert response.status_code == 200
    sale = response.get_json()["sale"]
    assert sale["total_cents"] == 2500
    assert sale["amount_due_cents"] == 2500
    assert sale["amount_paid_cents"] == 0


def test_stock_adjustment_and_count(client, seeded):
    base = f"/api/inventory/branches/{seeded['branch_id']}"

    received = client.post(
        f"{base}/adjustments",
        json={"product_id": seeded["product_id"], "quantity_delta": 5, "reason": "Delivery 42"},
        headers=_headers(),
    )
    assert received.status_code == 200
    assert received.get_json()["inventory"]["quantity"] == 8

    too_many = client.post(
        f"{base}/adjustments",
        json={"product_id": seeded["product_id"], "quantity_delta": -9, "reason": "Breakage"},
        headers=_headers(),
    )
    assert too_many.status_code == 409
    assert too_many.get_json()["code"] == "INSUFFICIENT_STOCK"

    counted = client.put(
        f"{base}/products/{seeded['product_id']}",
        json={"quantity": 2, "reason": "Shelf count"},
        headers=_headers(),
    )
    assert counted.status_code == 200
    assert counted.get_json()["inventory"]["quantity"] == 2

    movements = client.get(f"{base}/movements", headers=_headers()).get_json()["movements"]
    assert [(m["movement_type"], m["quantity_delta"], m["reason"]) for m in movements] == [
        ("STOCK_COUNT", -6, "Shelf count"),
        ("ADJUSTMENT", 5, "Delivery 42"),
    ]


def test_shift_close_returns_day_end(client, seeded):
    opened = client.post(
        "/api/shifts/open",
        json={"till_id": seeded["till_id"], "opening_balance_cents": 1000},
        headers=_headers(),
    )
    assert opened.status_code == 201
    shift_id = opened.get_json()["shift"]["id"]

    closed = client.post(
        f"/api/shifts/{shift_id}/close",
        json={"closing_balance_cents": 1000},
        headers=_headers(),
    )

    assert closed.status_code == 200
    body = closed.get_json()
    assert body["shift"]["variance_cents"] == 0
    assert body["day_end"]["shift_ids"] == [shift_id]


def test_data_stays_in_its_tenant(client, seeded):
    assert _create_sale(client, seeded).status_code == 201

    response = client.get("/api/sales", headers=_headers(tenant=TENANT_B))

    assert response.status_code == 200
    assert response.get_json()["total"] == 0


def test_health_reports_each_tenant(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "healthy"
    assert set(body["tenants"]) == {TENANT_A, TENANT_B}


def test_tenants_endpoint(client):
    assert client.get("/api/tenants").get_json() == {"tenants": [TENANT_A, TENANT_B]}
