"""
Day-end aggregation and its review/approve/reopen workflow.

WHY: Each branch closes each business date exactly once. Every shift that
closes on that date attaches to the same DayEnd row and triggers a full
recompute, so the totals are always derivable from the shifts and payments
behind them. Approval opens a limited edit window (24h by default); after
it passes the record is frozen.

LIFECYCLE:
    draft -> reviewed -> approved -> reopened -> reviewed -> approved ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Sequence

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import EditWindowExpired, InvalidStateTransition, NotFoundError, ValidationError
from ..models import (
    DayEnd, DayEndPayment, DayEndShift, Payment, Product, ProductCategory, Sale, SaleItem, Shift,
)
from ..models.day_end import DAY_END_APPROVED, DAY_END_DRAFT, DAY_END_REOPENED, DAY_END_REVIEWED
from ..models.sales import SALE_TYPE_CREDIT, SALE_TYPE_TILL
from ..time_utils import business_date_for, utcnow
from .concurrency import lock_for_update, run_in_transaction
from .settings_service import get_cash_context

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationEntry:
    payment_method_id: int
    currency_id: int
    actual_amount_cents: int


def edit_window() -> timedelta:
    return timedelta(hours=current_app.config.get("DAY_END_EDIT_WINDOW_HOURS", 24))


def _get_day_end_locked(day_end_id: int) -> DayEnd:
    day_end = lock_for_update(db.session.query(DayEnd).filter_by(id=day_end_id)).first()
    if day_end is None:
        raise NotFoundError("Day end not found", details={"day_end_id": day_end_id})
    return day_end


def _require_status(day_end: DayEnd, allowed: Sequence[str], action: str) -> None:
    if day_end.status not in allowed:
        raise InvalidStateTransition(
            f"Cannot {action} day end with status {day_end.status}",
            details={"day_end_id": day_end.id, "status": day_end.status, "allowed": list(allowed)},
        )


def _window_open(day_end: DayEnd, now) -> bool:
    return day_end.can_edit_until is not None and now <= day_end.can_edit_until


def _guard_edit(day_end: DayEnd, action: str) -> None:
    """Approved day-ends past their window reject every edit."""
    if day_end.status == DAY_END_APPROVED and not _window_open(day_end, utcnow()):
        logger.warning("Rejected %s on day end %s: edit window expired", action, day_end.id)
        raise EditWindowExpired(
            "Day end edit window has expired",
            details={"day_end_id": day_end.id, "can_edit_until": str(day_end.can_edit_until)},
        )


# =============================================================================
# AGGREGATION
# =============================================================================

def _expected_by_method_currency(shift_ids: Sequence[int]) -> dict[tuple[int, int], tuple[int, int]]:
    """{(payment_method_id, currency_id): (expected base cents, count)}"""
    if not shift_ids:
        return {}
    rows = (
        db.session.query(
            Payment.payment_method_id,
            Payment.currency_id,
            func.coalesce(func.sum(Payment.amount_base_cents), 0),
            func.count(Payment.id),
        )
        .filter(Payment.shift_id.in_(list(shift_ids)))
        .group_by(Payment.payment_method_id, Payment.currency_id)
        .all()
    )
    return {(method_id, currency_id): (int(total), int(count)) for method_id, currency_id, total, count in rows}


def recalculate_totals_locked(day_end: DayEnd) -> DayEnd:
    """
    Recompute totals from the attached shifts.

    total_sales: all payments taken in those shifts (base currency)
    total_cash: the cash-method subset
    total_variance: sum of shift variances
    """
    shift_ids = day_end.shift_ids
    if not shift_ids:
        day_end.total_sales_cents = 0
        day_end.total_cash_cents = 0
        day_end.total_variance_cents = 0
        return day_end

    cash = get_cash_context()
    total_variance = (
        db.session.query(func.coalesce(func.sum(Shift.variance_cents), 0))
        .filter(Shift.id.in_(shift_ids))
        .scalar()
    )
    total_sales = (
        db.session.query(func.coalesce(func.sum(Payment.amount_base_cents), 0))
        .filter(Payment.shift_id.in_(shift_ids))
        .scalar()
    )
    total_cash = (
        db.session.query(func.coalesce(func.sum(Payment.amount_base_cents), 0))
        .filter(
            Payment.shift_id.in_(shift_ids),
            Payment.payment_method_id == cash.cash_payment_method_id,
        )
        .scalar()
    )

    day_end.total_sales_cents = int(total_sales)
    day_end.total_cash_cents = int(total_cash)
    day_end.total_variance_cents = int(total_variance)
    db.session.flush()
    return day_end


def attach_shift_locked(shift: Shift, actor_id: int | None = None) -> DayEnd:
    """
    Attach a just-closed shift to its branch/date day-end and recompute.

    Creates the day-end on the first close of the date. An approved
    day-end still takes late shifts while its edit window is open and
    keeps its status; past the window the shift cannot close at all.
    """
    if shift.closed_at is None:
        raise InvalidStateTransition("Shift must be closed before it can be attached", details={"shift_id": shift.id})

    business_date = business_date_for(shift.closed_at)
    day_end = lock_for_update(
        db.session.query(DayEnd).filter_by(branch_id=shift.branch_id, business_date=business_date)
    ).first()

    if day_end is None:
        day_end = DayEnd(
            branch_id=shift.branch_id,
            business_date=business_date,
            status=DAY_END_DRAFT,
            created_by=actor_id if actor_id is not None else shift.cashier_id,
        )
        db.session.add(day_end)
        db.session.flush()
        logger.info("Created day end %s for branch %s on %s", day_end.id, shift.branch_id, business_date)
    elif day_end.status == DAY_END_APPROVED:
        _guard_edit(day_end, "shift attach")
        logger.info("Attaching shift %s to approved day end %s inside its edit window", shift.id, day_end.id)

    if shift.id not in day_end.shift_ids:
        day_end.shift_links.append(DayEndShift(shift_id=shift.id))
        db.session.flush()

    return recalculate_totals_locked(day_end)


# =============================================================================
# RECONCILIATION
# =============================================================================

def update_payment_reconciliation(day_end_id: int, entries: Sequence[ReconciliationEntry]) -> DayEnd:
    """
    Replace all reconciliation rows of a day-end.

    Expected amounts are recomputed from the underlying payments on every
    call; only the actual amounts come from the caller.

    Raises:
        EditWindowExpired: approved and past can_edit_until
        ValidationError: duplicate (method, currency) pair or negative actual
    """
    def _op():
        day_end = _get_day_end_locked(day_end_id)
        _guard_edit(day_end, "reconciliation update")

        seen: set[tuple[int, int]] = set()
        for entry in entries:
            key = (entry.payment_method_id, entry.currency_id)
            if key in seen:
                raise ValidationError(
                    "Duplicate payment method/currency in reconciliation",
                    details={"payment_method_id": key[0], "currency_id": key[1]},
                )
            if entry.actual_amount_cents is None or entry.actual_amount_cents < 0:
                raise ValidationError("Actual amount cannot be negative", details={"payment_method_id": key[0]})
            seen.add(key)

        expected = _expected_by_method_currency(day_end.shift_ids)

        day_end.payments = []
        db.session.flush()
        for entry in entries:
            expected_cents, count = expected.get((entry.payment_method_id, entry.currency_id), (0, 0))
            day_end.payments.append(DayEndPayment(
                payment_method_id=entry.payment_method_id,
                currency_id=entry.currency_id,
                expected_amount_cents=expected_cents,
                actual_amount_cents=entry.actual_amount_cents,
                variance_cents=entry.actual_amount_cents - expected_cents,
                transaction_count=count,
            ))
        db.session.flush()
        logger.info("Reconciliation updated on day end %s (%s rows)", day_end.id, len(entries))
        return day_end

    return run_in_transaction(_op)


# =============================================================================
# WORKFLOW
# =============================================================================

def review_day_end(day_end_id: int, actor_id: int) -> DayEnd:
    def _op():
        day_end = _get_day_end_locked(day_end_id)
        _require_status(day_end, (DAY_END_DRAFT, DAY_END_REOPENED), "review")
        day_end.status = DAY_END_REVIEWED
        day_end.reviewed_by = actor_id
        day_end.reviewed_at = utcnow()
        db.session.flush()
        logger.info("Day end %s reviewed by %s", day_end.id, actor_id)
        return day_end

    return run_in_transaction(_op)


def approve_day_end(day_end_id: int, actor_id: int) -> DayEnd:
    """reviewed -> approved; opens the edit window from now."""
    def _op():
        day_end = _get_day_end_locked(day_end_id)
        _require_status(day_end, (DAY_END_REVIEWED,), "approve")
        now = utcnow()
        day_end.status = DAY_END_APPROVED
        day_end.approved_by = actor_id
        day_end.approved_at = now
        day_end.closed_at = now
        day_end.can_edit_until = now + edit_window()
        db.session.flush()
        logger.info("Day end %s approved by %s (editable until %s)", day_end.id, actor_id, day_end.can_edit_until)
        return day_end

    return run_in_transaction(_op)


def reopen_day_end(day_end_id: int, actor_id: int) -> DayEnd:
    """approved -> reopened, only inside the edit window. Totals are kept."""
    def _op():
        day_end = _get_day_end_locked(day_end_id)
        _require_status(day_end, (DAY_END_APPROVED,), "reopen")
        _guard_edit(day_end, "reopen")
        day_end.status = DAY_END_REOPENED
        day_end.reopened_by = actor_id
        day_end.reopened_at = utcnow()
        db.session.flush()
        logger.info("Day end %s reopened by %s", day_end.id, actor_id)
        return day_end

    return run_in_transaction(_op)


# =============================================================================
# READS
# =============================================================================

def get_day_end(day_end_id: int) -> DayEnd:
    day_end = db.session.get(DayEnd, day_end_id)
    if day_end is None:
        raise NotFoundError("Day end not found", details={"day_end_id": day_end_id})
    return day_end


def find_day_end(branch_id: int, business_date: date) -> DayEnd | None:
    return db.session.query(DayEnd).filter_by(branch_id=branch_id, business_date=business_date).first()


def list_day_ends(
    *,
    branch_id: int | None = None,
    status: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int = 30,
) -> list[DayEnd]:
    query = db.session.query(DayEnd)
    if branch_id is not None:
        query = query.filter(DayEnd.branch_id == branch_id)
    if status:
        query = query.filter(DayEnd.status == status)
    if start_date:
        query = query.filter(DayEnd.business_date >= start_date)
    if end_date:
        query = query.filter(DayEnd.business_date <= end_date)
    return query.order_by(DayEnd.business_date.desc()).limit(max(1, min(limit, 366))).all()


def _payment_reconciliation(day_end: DayEnd) -> list[dict]:
    expected = _expected_by_method_currency(day_end.shift_ids)
    actuals = {(row.payment_method_id, row.currency_id): row for row in day_end.payments}

    rows = []
    for key in sorted(set(expected) | set(actuals)):
        expected_cents, count = expected.get(key, (0, 0))
        actual_row = actuals.get(key)
        actual_cents = actual_row.actual_amount_cents if actual_row is not None else expected_cents
        rows.append({
            "payment_method_id": key[0],
            "currency_id": key[1],
            "expected_amount_cents": expected_cents,
            "actual_amount_cents": actual_cents,
            "variance_cents": actual_cents - expected_cents,
            "transaction_count": count,
        })
    return rows


def _sales_summary(day_end: DayEnd) -> dict:
    """Sales that took payments in this day-end's shifts."""
    shift_ids = day_end.shift_ids
    empty = {
        "total_sales_cents": 0,
        "sales_by_type": {SALE_TYPE_CREDIT: 0, SALE_TYPE_TILL: 0},
        "sales_by_cashier": [],
        "sales_by_category": [],
        "discounts_given_cents": 0,
        "tax_collected_cents": 0,
    }
    if not shift_ids:
        return empty

    sale_ids = [
        sale_id
        for (sale_id,) in db.session.query(Payment.sale_id)
        .filter(Payment.shift_id.in_(shift_ids), Payment.sale_id.isnot(None))
        .distinct()
        .order_by(Payment.sale_id)
        .all()
    ]
    if not sale_ids:
        return empty

    sales = {s.id: s for s in db.session.query(Sale).filter(Sale.id.in_(sale_ids)).all()}

    by_type = {SALE_TYPE_CREDIT: 0, SALE_TYPE_TILL: 0}
    for sale in sales.values():
        by_type[sale.sale_type] = by_type.get(sale.sale_type, 0) + sale.total_cents

    # A sale paid across shifts is split by what each cashier actually took.
    cashier_rows = (
        db.session.query(
            Shift.cashier_id,
            func.sum(Payment.amount_base_cents),
            func.count(func.distinct(Payment.sale_id)),
        )
        .join(Shift, Shift.id == Payment.shift_id)
        .filter(Payment.shift_id.in_(shift_ids), Payment.sale_id.isnot(None))
        .group_by(Shift.cashier_id)
        .order_by(Shift.cashier_id)
        .all()
    )

    category_rows = (
        db.session.query(
            ProductCategory.id,
            ProductCategory.name,
            func.sum(SaleItem.line_total_cents),
            func.sum(SaleItem.quantity),
        )
        .join(Product, Product.id == SaleItem.product_id)
        .join(ProductCategory, ProductCategory.id == Product.category_id)
        .filter(SaleItem.sale_id.in_(sale_ids))
        .group_by(ProductCategory.id, ProductCategory.name)
        .order_by(ProductCategory.name)
        .all()
    )

    return {
        "total_sales_cents": sum(s.total_cents for s in sales.values()),
        "sales_by_type": by_type,
        "sales_by_cashier": [
            {"cashier_id": cashier_id, "total_sales_cents": int(total or 0), "transaction_count": int(count)}
            for cashier_id, total, count in cashier_rows
        ],
        "sales_by_category": [
            {
                "category_id": category_id,
                "category_name": name,
                "total_sales_cents": int(total or 0),
                "quantity": int(quantity or 0),
            }
            for category_id, name, total, quantity in category_rows
        ],
        "discounts_given_cents": sum(
            s.discount_amount_cents + sum(i.discount_amount_cents for i in s.items) for s in sales.values()
        ),
        "tax_collected_cents": sum(s.tax_amount_cents for s in sales.values()),
    }


def get_day_end_summary(day_end_id: int) -> dict:
    day_end = get_day_end(day_end_id)
    return {
        "day_end": day_end.to_dict(),
        "payment_reconciliation": _payment_reconciliation(day_end),
        "sales_summary": _sales_summary(day_end),
    }
