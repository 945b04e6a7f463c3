"""
Till & shift tests: one open shift per cashier, cash movements and expected cash.
"""

import pytest

from posengine.errors import InvalidStateTransition, ValidationError
from posengine.models.registers import SHIFT_CLOSED, SHIFT_OPEN
from posengine.services import sales_service, shift_service
from posengine.services.cart_service import CartItem
from posengine.services.payment_service import PaymentRequest

from conftest import CASHIER_ID, SUPERVISOR_ID


@pytest.fixture()
def open_shift(settings, till):
    return shift_service.open_shift(till_id=till.id, cashier_id=CASHIER_ID, opening_balance_cents=10_000)


@pytest.fixture()
def movement(base_currency):
    """add_movement(shift, type, amount, approve=True)"""
    def _add(shift, movement_type, amount_cents, approve=True):
        created = shift_service.add_cash_movement(
            shift_id=shift.id,
            movement_type=movement_type,
            amount_cents=amount_cents,
            currency_id=base_currency.id,
            reason=f"{movement_type} test",
            actor_id=CASHIER_ID,
        )
        if approve:
            created = shift_service.approve_cash_movement(created.id, SUPERVISOR_ID)
        return created

    return _add


def test_open_shift(tenant_a, open_shift, till):
    assert open_shift.status == SHIFT_OPEN
    assert open_shift.branch_id == till.branch_id
    assert shift_service.get_current_shift(CASHIER_ID).id == open_shift.id


def test_one_open_shift_per_cashier(tenant_a, open_shift, branch):
    from posengine.models import Till

    second_till = Till(branch_id=branch.id, name="Till 2")
    tenant_a.add(second_till)
    tenant_a.commit()

    with pytest.raises(InvalidStateTransition):
        shift_service.open_shift(till_id=second_till.id, cashier_id=CASHIER_ID)

    other = shift_service.open_shift(till_id=second_till.id, cashier_id=CASHIER_ID + 1)
    assert other.status == SHIFT_OPEN


def test_negative_opening_balance_rejected(tenant_a, settings, till):
    with pytest.raises(ValidationError):
        shift_service.open_shift(till_id=till.id, cashier_id=CASHIER_ID, opening_balance_cents=-1)


def test_movement_validation(tenant_a, open_shift, base_currency):
    with pytest.raises(ValidationError):
        shift_service.add_cash_movement(
            shift_id=open_shift.id, movement_type="float_top_up", amount_cents=100,
            currency_id=base_currency.id, reason="x", actor_id=CASHIER_ID,
        )
    with pytest.raises(ValidationError):
        shift_service.add_cash_movement(
            shift_id=open_shift.id, movement_type="cash_in", amount_cents=100,
            currency_id=base_currency.id, reason="  ", actor_id=CASHIER_ID,
        )


def test_movement_approval_is_one_way(tenant_a, open_shift, movement):
    approved = movement(open_shift, "cash_in", 500)

    assert approved.approved_by == SUPERVISOR_ID
    with pytest.raises(InvalidStateTransition):
        shift_service.approve_cash_movement(approved.id, SUPERVISOR_ID)


def test_pending_movement_blocks_close(tenant_a, open_shift, movement):
    pending = movement(open_shift, "cash_out", 300, approve=False)

    with pytest.raises(InvalidStateTransition) as exc:
        shift_service.close_shift(open_shift.id, closing_balance_cents=9700, actor_id=CASHIER_ID)

    assert exc.value.details["pending_movement_ids"] == [pending.id]
    assert shift_service.get_shift(open_shift.id).status == SHIFT_OPEN


def test_expected_cash_breakdown(tenant_a, open_shift, movement, branch, make_product, cash, card_method, base_currency):
    product = make_product(2500, stock=10)
    sales_service.create_till_sale(
        branch_id=branch.id, items=[CartItem(product.id, 1)], payments=[cash(2500)], actor_id=CASHIER_ID,
    )
    # Card takings are not cash
    sales_service.create_till_sale(
        branch_id=branch.id,
        items=[CartItem(product.id, 2)],
        payments=[PaymentRequest(amount_cents=5000, currency_id=base_currency.id, payment_method_id=card_method.id)],
        actor_id=CASHIER_ID,
    )
    movement(open_shift, "cash_in", 500)
    movement(open_shift, "cash_out", 300)
    movement(open_shift, "petty_cash", 200)
    movement(open_shift, "bank_deposit", 1000)

    breakdown = shift_service.calculate_expected_cash(shift_service.get_shift(open_shift.id))

    assert breakdown.opening_balance_cents == 10_000
    assert breakdown.cash_payments_cents == 2500
    assert breakdown.cash_in_cents == 500
    assert breakdown.cash_out_cents == 300
    assert breakdown.petty_cash_cents == 200
    assert breakdown.bank_deposits_cents == 1000
    assert breakdown.expected_cash_cents == 11_500


def test_unapproved_movement_not_in_expected_cash(tenant_a, open_shift, movement):
    movement(open_shift, "cash_in", 500, approve=False)

    breakdown = shift_service.calculate_expected_cash(shift_service.get_shift(open_shift.id))

    assert breakdown.expected_cash_cents == 10_000


def test_close_records_variance_and_creates_day_end(tenant_a, open_shift, movement):
    movement(open_shift, "cash_out", 1000)

    shift, day_end = shift_service.close_shift(open_shift.id, closing_balance_cents=8950, actor_id=CASHIER_ID)

    assert shift.status == SHIFT_CLOSED
    assert shift.expected_cash_cents == 9000
    assert shift.variance_cents == -50
    assert day_end.shift_ids == [shift.id]
    assert day_end.total_variance_cents == -50
    assert shift_service.get_current_shift(CASHIER_ID) is None


def test_closed_shift_rejects_changes(tenant_a, open_shift, base_currency):
    shift_service.close_shift(open_shift.id, closing_balance_cents=10_000, actor_id=CASHIER_ID)

    with pytest.raises(InvalidStateTransition):
        shift_service.close_shift(open_shift.id, closing_balance_cents=10_000, actor_id=CASHIER_ID)
    with pytest.raises(InvalidStateTransition):
        shift_service.add_cash_movement(
            shift_id=open_shift.id, movement_type="cash_in", amount_cents=100,
            currency_id=base_currency.id, reason="late", actor_id=CASHIER_ID,
        )


def test_shift_summary(tenant_a, open_shift, movement):
    movement(open_shift, "cash_in", 250)

    summary = shift_service.get_shift_summary(open_shift.id)

    assert summary["shift"]["id"] == open_shift.id
    assert summary["expected_cash"]["expected_cash_cents"] == 10_250
    assert len(summary["movements"]) == 1
    assert summary["payment_count"] == 0
