"""
Day-end aggregation and review/approve/reopen workflow tests.
"""

from datetime import datetime, timedelta

import pytest

from posengine.errors import EditWindowExpired, InvalidStateTransition
from posengine.models import DayEnd, Till
from posengine.models.day_end import DAY_END_APPROVED, DAY_END_DRAFT, DAY_END_REOPENED, DAY_END_REVIEWED
from posengine.models.registers import SHIFT_OPEN
from posengine.services import day_end_service, sales_service, shift_service
from posengine.services.cart_service import CartItem
from posengine.services.day_end_service import ReconciliationEntry
from posengine.services.payment_service import PaymentRequest
from posengine.time_utils import utcnow

from conftest import CASHIER_ID, SUPERVISOR_ID

CLOSE_TIME = datetime(2026, 10, 18, 17, 30)
OTHER_CASHIER_ID = CASHIER_ID + 1


@pytest.fixture(autouse=True)
def fixed_close_time(monkeypatch):
    """All shifts in this module open and close on CLOSE_TIME's date."""
    monkeypatch.setattr(shift_service, "utcnow", lambda: CLOSE_TIME)


@pytest.fixture()
def second_till(tenant_a, branch):
    till = Till(branch_id=branch.id, name="Till 2")
    tenant_a.add(till)
    tenant_a.commit()
    return till


@pytest.fixture()
def busy_day(settings, branch, till, second_till, make_product, cash, card_method, base_currency):
    """
    Two shifts at one branch, both closed on CLOSE_TIME's date.

    shift 1: 25.00 cash, counted exact
    shift 2: 40.00 card + 10.00 cash, counted 0.50 short
    """
    product = make_product(500, stock=100)
    card = PaymentRequest(amount_cents=4000, currency_id=base_currency.id, payment_method_id=card_method.id)

    first = shift_service.open_shift(till_id=till.id, cashier_id=CASHIER_ID, opening_balance_cents=5000)
    second = shift_service.open_shift(till_id=second_till.id, cashier_id=OTHER_CASHIER_ID, opening_balance_cents=5000)

    sales_service.create_till_sale(
        branch_id=branch.id, items=[CartItem(product.id, 5)], payments=[cash(2500)], actor_id=CASHIER_ID,
    )
    sales_service.create_till_sale(
        branch_id=branch.id, items=[CartItem(product.id, 10)], payments=[card, cash(1000)], actor_id=OTHER_CASHIER_ID,
    )

    _, day_end = shift_service.close_shift(first.id, closing_balance_cents=7500, actor_id=CASHIER_ID)
    _, day_end = shift_service.close_shift(second.id, closing_balance_cents=5950, actor_id=OTHER_CASHIER_ID)
    return day_end


def _approved(day_end_id):
    day_end_service.review_day_end(day_end_id, SUPERVISOR_ID)
    return day_end_service.approve_day_end(day_end_id, SUPERVISOR_ID)


def test_shifts_on_same_date_share_one_day_end(tenant_a, busy_day, branch):
    assert tenant_a.query(DayEnd).count() == 1

    day_end = day_end_service.find_day_end(branch.id, CLOSE_TIME.date())
    assert day_end.id == busy_day.id
    assert day_end.status == DAY_END_DRAFT
    assert len(day_end.shift_ids) == 2
    assert day_end.total_sales_cents == 7500
    assert day_end.total_cash_cents == 3500
    assert day_end.total_variance_cents == -50


def test_reconciliation_recomputes_expected(tenant_a, busy_day, cash_method, card_method, base_currency):
    day_end = day_end_service.update_payment_reconciliation(busy_day.id, [
        ReconciliationEntry(cash_method.id, base_currency.id, 3400),
        ReconciliationEntry(card_method.id, base_currency.id, 4000),
    ])

    rows = {row.payment_method_id: row for row in day_end.payments}
    assert rows[cash_method.id].expected_amount_cents == 3500
    assert rows[cash_method.id].variance_cents == -100
    assert rows[cash_method.id].transaction_count == 2
    assert rows[card_method.id].expected_amount_cents == 4000
    assert rows[card_method.id].variance_cents == 0

    # A second update replaces every row
    day_end = day_end_service.update_payment_reconciliation(busy_day.id, [
        ReconciliationEntry(cash_method.id, base_currency.id, 3500),
    ])
    assert len(day_end.payments) == 1
    assert day_end.payments[0].variance_cents == 0


def test_summary_breaks_down_sales(tenant_a, busy_day, cash_method):
    summary = day_end_service.get_day_end_summary(busy_day.id)

    sales = summary["sales_summary"]
    assert sales["total_sales_cents"] == 7500
    assert sales["sales_by_type"]["till"] == 7500
    assert [c["cashier_id"] for c in sales["sales_by_cashier"]] == [CASHIER_ID, OTHER_CASHIER_ID]

    cash_row = next(r for r in summary["payment_reconciliation"] if r["payment_method_id"] == cash_method.id)
    assert cash_row["expected_amount_cents"] == 3500


def test_review_approve_reopen_cycle(tenant_a, busy_day):
    reviewed = day_end_service.review_day_end(busy_day.id, SUPERVISOR_ID)
    assert reviewed.status == DAY_END_REVIEWED

    approved = day_end_service.approve_day_end(busy_day.id, SUPERVISOR_ID)
    assert approved.status == DAY_END_APPROVED
    assert approved.can_edit_until - approved.approved_at == timedelta(hours=24)

    reopened = day_end_service.reopen_day_end(busy_day.id, SUPERVISOR_ID)
    assert reopened.status == DAY_END_REOPENED
    assert reopened.total_sales_cents == 7500

    assert day_end_service.review_day_end(busy_day.id, SUPERVISOR_ID).status == DAY_END_REVIEWED


def test_approve_requires_review(tenant_a, busy_day):
    with pytest.raises(InvalidStateTransition):
        day_end_service.approve_day_end(busy_day.id, SUPERVISOR_ID)


def test_reopen_requires_approved(tenant_a, busy_day):
    with pytest.raises(InvalidStateTransition):
        day_end_service.reopen_day_end(busy_day.id, SUPERVISOR_ID)


def test_edits_rejected_after_window(tenant_a, busy_day, monkeypatch, cash_method, base_currency):
    _approved(busy_day.id)
    later = utcnow() + timedelta(hours=25)
    monkeypatch.setattr(day_end_service, "utcnow", lambda: later)

    with pytest.raises(EditWindowExpired):
        day_end_service.reopen_day_end(busy_day.id, SUPERVISOR_ID)
    with pytest.raises(EditWindowExpired):
        day_end_service.update_payment_reconciliation(busy_day.id, [
            ReconciliationEntry(cash_method.id, base_currency.id, 0),
        ])

    assert day_end_service.get_day_end(busy_day.id).status == DAY_END_APPROVED


def test_reconciliation_allowed_inside_window(tenant_a, busy_day, cash_method, base_currency):
    _approved(busy_day.id)

    day_end = day_end_service.update_payment_reconciliation(busy_day.id, [
        ReconciliationEntry(cash_method.id, base_currency.id, 3500),
    ])

    assert day_end.payments[0].variance_cents == 0


def test_closing_into_approved_day_end(tenant_a, busy_day, till, monkeypatch):
    approved = _approved(busy_day.id)
    can_edit_until = approved.can_edit_until
    late = shift_service.open_shift(till_id=till.id, cashier_id=CASHIER_ID, opening_balance_cents=1000)

    _, day_end = shift_service.close_shift(late.id, closing_balance_cents=900, actor_id=CASHIER_ID)

    assert day_end.id == busy_day.id
    assert day_end.status == DAY_END_APPROVED
    assert day_end.can_edit_until == can_edit_until
    assert late.id in day_end.shift_ids
    assert day_end.total_variance_cents == -150

    stale = shift_service.open_shift(till_id=till.id, cashier_id=CASHIER_ID)
    later = utcnow() + timedelta(hours=25)
    monkeypatch.setattr(day_end_service, "utcnow", lambda: later)
    with pytest.raises(EditWindowExpired):
        shift_service.close_shift(stale.id, closing_balance_cents=0, actor_id=CASHIER_ID)
    assert shift_service.get_shift(stale.id).status == SHIFT_OPEN
    assert stale.id not in day_end_service.get_day_end(busy_day.id).shift_ids


def test_sale_paid_across_cashiers_is_split(tenant_a, settings, branch, till, second_till, customer, make_product, cash):
    product = make_product(6000)
    first = shift_service.open_shift(till_id=till.id, cashier_id=CASHIER_ID)
    second = shift_service.open_shift(till_id=second_till.id, cashier_id=OTHER_CASHIER_ID)

    sale = sales_service.create_credit_sale(
        branch_id=branch.id, customer_id=customer.id, items=[CartItem(product.id, 1)], actor_id=CASHIER_ID,
    )
    sales_service.confirm_sale(sale.id, CASHIER_ID)
    sales_service.add_sale_payment(sale.id, cash(2000), CASHIER_ID)
    sales_service.add_sale_payment(sale.id, cash(4000), OTHER_CASHIER_ID)

    shift_service.close_shift(first.id, closing_balance_cents=2000, actor_id=CASHIER_ID)
    _, day_end = shift_service.close_shift(second.id, closing_balance_cents=4000, actor_id=OTHER_CASHIER_ID)

    sales = day_end_service.get_day_end_summary(day_end.id)["sales_summary"]
    assert sales["total_sales_cents"] == 6000
    assert sales["sales_by_cashier"] == [
        {"cashier_id": CASHIER_ID, "total_sales_cents": 2000, "transaction_count": 1},
        {"cashier_id": OTHER_CASHIER_ID, "total_sales_cents": 4000, "transaction_count": 1},
    ]


def test_list_day_ends_by_date(tenant_a, busy_day, branch):
    rows = day_end_service.list_day_ends(
        branch_id=branch.id, start_date=CLOSE_TIME.date(), end_date=CLOSE_TIME.date(),
    )
    assert [d.id for d in rows] == [busy_day.id]

    assert day_end_service.list_day_ends(branch_id=branch.id, start_date=CLOSE_TIME.date() + timedelta(days=1)) == []
