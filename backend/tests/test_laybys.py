"""
Layby workflow tests: deposit rule, stock reservation and cancellation refunds.
"""

import pytest

from posengine.errors import (
    DepositBelowMinimum, InsufficientStock, InvalidStateTransition, PaymentExceedsDue, ValidationError,
)
from posengine.models.sales import (
    LAYBY_ACTIVE,
    LAYBY_CANCELLED,
    LAYBY_COLLECTED,
    LAYBY_DRAFT,
    LAYBY_FULLY_PAID,
    LAYBY_PARTIALLY_PAID,
)
from posengine.services import layby_service
from posengine.services.cart_service import CartItem

from conftest import CASHIER_ID, stock_of


@pytest.fixture()
def make_layby(settings, branch, customer, make_product):
    def _make(quantity=2, price_cents=5000, stock=10):
        product = make_product(price_cents, stock=stock)
        layby = layby_service.create_layby(
            branch_id=branch.id,
            customer_id=customer.id,
            items=[CartItem(product.id, quantity)],
            actor_id=CASHIER_ID,
        )
        return layby, product

    return _make


def test_create_captures_terms(tenant_a, settings, make_layby, branch):
    settings.layby_deposit_bps = 2000
    settings.cancellation_fee_cents = 500
    tenant_a.commit()

    layby, product = make_layby(quantity=2, price_cents=5000)

    assert layby.layby_number.startswith("LB")
    assert layby.status == LAYBY_DRAFT
    assert layby.total_cents == 10_000
    assert layby.deposit_required_cents == 2000
    assert layby.cancellation_fee_cents == 500
    assert stock_of(product, branch) == 10


def test_activate_reserves_stock(tenant_a, make_layby, branch):
    layby, product = make_layby(quantity=3, stock=10)

    layby = layby_service.activate_layby(layby.id, CASHIER_ID)

    assert layby.status == LAYBY_ACTIVE
    assert all(item.stock_reserved for item in layby.items)
    assert stock_of(product, branch) == 7


def test_activate_without_stock_reserves_nothing(tenant_a, make_layby, branch):
    layby, product = make_layby(quantity=3, stock=2)

    with pytest.raises(InsufficientStock):
        layby_service.activate_layby(layby.id, CASHIER_ID)

    layby = layby_service.get_layby(layby.id)
    assert layby.status == LAYBY_DRAFT
    assert not any(item.stock_reserved for item in layby.items)
    assert stock_of(product, branch) == 2


def test_first_payment_must_cover_deposit(tenant_a, settings, make_layby, cash):
    settings.layby_deposit_bps = 2000
    tenant_a.commit()
    layby, _ = make_layby()
    layby_service.activate_layby(layby.id, CASHIER_ID)

    with pytest.raises(DepositBelowMinimum):
        layby_service.add_layby_payment(layby.id, cash(1999), CASHIER_ID)

    layby, _ = layby_service.add_layby_payment(layby.id, cash(2000), CASHIER_ID)
    assert layby.status == LAYBY_PARTIALLY_PAID

    # Later instalments may be smaller than the deposit
    layby, _ = layby_service.add_layby_payment(layby.id, cash(100), CASHIER_ID)
    assert layby.amount_paid_cents == 2100
    assert layby.amount_paid_cents + layby.amount_due_cents == layby.total_cents


def test_zero_first_payment_is_a_validation_error(tenant_a, settings, make_layby, cash):
    settings.layby_deposit_bps = 2000
    tenant_a.commit()
    layby, _ = make_layby()
    layby_service.activate_layby(layby.id, CASHIER_ID)

    for amount in (0, None):
        with pytest.raises(ValidationError):
            layby_service.add_layby_payment(layby.id, cash(amount), CASHIER_ID)

    assert layby_service.get_layby(layby.id).amount_paid_cents == 0


def test_update_can_clear_order_discount(tenant_a, make_layby, make_discount):
    layby, _ = make_layby(quantity=1, price_cents=5000)
    discount = make_discount(1000)

    discounted = layby_service.update_layby(layby.id, discount_id=discount.id)
    assert discounted.total_cents == 4500

    cleared = layby_service.update_layby(layby.id, clear_discount=True)
    assert cleared.discount_id is None
    assert cleared.total_cents == 5000
    assert cleared.amount_due_cents == 5000


def test_payment_on_draft_rejected(tenant_a, make_layby, cash):
    layby, _ = make_layby()

    with pytest.raises(InvalidStateTransition):
        layby_service.add_layby_payment(layby.id, cash(1000), CASHIER_ID)


def test_pay_in_full_and_collect(tenant_a, make_layby, cash):
    layby, _ = make_layby()
    layby_service.activate_layby(layby.id, CASHIER_ID)

    with pytest.raises(PaymentExceedsDue):
        layby_service.add_layby_payment(layby.id, cash(20_000), CASHIER_ID)

    layby_service.add_layby_payment(layby.id, cash(6000), CASHIER_ID)
    layby, _ = layby_service.add_layby_payment(layby.id, cash(4000), CASHIER_ID)
    assert layby.status == LAYBY_FULLY_PAID

    layby = layby_service.collect_layby(layby.id, CASHIER_ID)
    assert layby.status == LAYBY_COLLECTED
    assert layby.collected_by == CASHIER_ID
    assert layby.customer.last_purchase_at is not None


def test_collect_before_fully_paid_rejected(tenant_a, make_layby, cash):
    layby, _ = make_layby()
    layby_service.activate_layby(layby.id, CASHIER_ID)
    layby_service.add_layby_payment(layby.id, cash(1000), CASHIER_ID)

    with pytest.raises(InvalidStateTransition):
        layby_service.collect_layby(layby.id, CASHIER_ID)


def test_cancel_refunds_paid_less_fee_and_returns_stock(tenant_a, settings, make_layby, cash, branch):
    settings.cancellation_fee_cents = 20
    tenant_a.commit()
    layby, product = make_layby(quantity=2, stock=10)
    layby_service.activate_layby(layby.id, CASHIER_ID)
    layby_service.add_layby_payment(layby.id, cash(100), CASHIER_ID)
    assert stock_of(product, branch) == 8

    result = layby_service.cancel_layby(layby.id, actor_id=CASHIER_ID, reason="Changed mind")

    assert result.refund_cents == 80
    assert result.items_returned == 1
    assert result.layby.status == LAYBY_CANCELLED
    assert result.layby.refund_amount_cents == 80
    assert result.layby.cancellation_reason == "Changed mind"
    assert not any(item.stock_reserved for item in result.layby.items)
    assert stock_of(product, branch) == 10


def test_cancel_fee_never_makes_refund_negative(tenant_a, settings, make_layby):
    settings.cancellation_fee_cents = 500
    tenant_a.commit()
    layby, _ = make_layby()
    layby_service.activate_layby(layby.id, CASHIER_ID)

    result = layby_service.cancel_layby(layby.id, actor_id=CASHIER_ID)

    assert result.refund_cents == 0


def test_cancel_draft_returns_nothing(tenant_a, make_layby, branch):
    layby, product = make_layby(quantity=2, stock=10)

    result = layby_service.cancel_layby(layby.id, actor_id=CASHIER_ID)

    assert result.items_returned == 0
    assert result.refund_cents == 0
    assert stock_of(product, branch) == 10


def test_cancel_collected_rejected(tenant_a, make_layby, cash):
    layby, _ = make_layby()
    layby_service.activate_layby(layby.id, CASHIER_ID)
    layby_service.add_layby_payment(layby.id, cash(10_000), CASHIER_ID)
    layby_service.collect_layby(layby.id, CASHIER_ID)

    with pytest.raises(InvalidStateTransition):
        layby_service.cancel_layby(layby.id, actor_id=CASHIER_ID)


def test_update_only_while_draft(tenant_a, make_layby, make_product):
    layby, _ = make_layby(quantity=1, price_cents=5000)
    other = make_product(300)

    updated = layby_service.update_layby(layby.id, items=[CartItem(other.id, 2)])
    assert updated.total_cents == 600
    assert updated.amount_due_cents == 600

    layby_service.activate_layby(layby.id, CASHIER_ID)
    with pytest.raises(InvalidStateTransition):
        layby_service.update_layby(layby.id, notes="too late")


def test_list_active_laybys(tenant_a, make_layby, branch):
    draft, _ = make_layby()
    active, _ = make_layby()
    layby_service.activate_layby(active.id, CASHIER_ID)

    assert [l.id for l in layby_service.list_active_laybys(branch.id)] == [active.id]
    rows, total = layby_service.list_laybys(branch_id=branch.id, status=LAYBY_DRAFT)
    assert total == 1
    assert rows[0].id == draft.id
