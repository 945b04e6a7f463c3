"""
Till & shift management.

WHY: Cashier accountability. A shift is opened with a float, collects cash
payments and supervisor-approved cash movements, and is closed with a
counted balance; the difference from expected cash is the variance.

DESIGN PRINCIPLES:
- One open shift per cashier
- Cash movements start pending; approval is one-way
- A shift with pending movements cannot close
- Closing a shift rolls it into the branch day-end in the same transaction
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from sqlalchemy import func

from ..extensions import db
from ..errors import InvalidStateTransition, NotFoundError, ValidationError
from ..models import CashMovement, Currency, Payment, Shift, Till
from ..models.registers import (
    MOVEMENT_BANK_DEPOSIT,
    MOVEMENT_CASH_IN,
    MOVEMENT_CASH_OUT,
    MOVEMENT_PETTY_CASH,
    MOVEMENT_TYPES,
    SHIFT_CLOSED,
    SHIFT_OPEN,
)
from ..time_utils import utcnow
from . import day_end_service
from .concurrency import lock_for_update, run_in_transaction
from .payment_service import to_base_cents
from .settings_service import get_cash_context

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpectedCash:
    opening_balance_cents: int
    cash_payments_cents: int
    cash_in_cents: int
    cash_out_cents: int
    petty_cash_cents: int
    bank_deposits_cents: int
    expected_cash_cents: int

    def to_dict(self) -> dict:
        return asdict(self)


def _get_shift_locked(shift_id: int) -> Shift:
    shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
    if shift is None:
        raise NotFoundError("Shift not found", details={"shift_id": shift_id})
    return shift


def _require_open(shift: Shift, action: str) -> None:
    if shift.status != SHIFT_OPEN:
        raise InvalidStateTransition(
            f"Cannot {action}: shift is {shift.status}",
            details={"shift_id": shift.id, "status": shift.status},
        )


# =============================================================================
# OPEN
# =============================================================================

def open_shift(
    *,
    till_id: int,
    cashier_id: int,
    opening_balance_cents: int = 0,
    notes: str | None = None,
) -> Shift:
    """
    Open a shift on an active till.

    Raises:
        NotFoundError: till does not exist
        ValidationError: till inactive or negative opening balance
        InvalidStateTransition: cashier already has an open shift
    """
    def _op():
        till = db.session.get(Till, till_id)
        if till is None:
            raise NotFoundError("Till not found", details={"till_id": till_id})
        if not till.is_active:
            raise ValidationError("Till is inactive", details={"till_id": till_id})
        if opening_balance_cents is None or opening_balance_cents < 0:
            raise ValidationError("Opening balance cannot be negative")

        existing = get_current_shift(cashier_id)
        if existing is not None:
            raise InvalidStateTransition(
                "Cashier already has an open shift",
                details={"cashier_id": cashier_id, "shift_id": existing.id},
            )

        shift = Shift(
            till_id=till.id,
            branch_id=till.branch_id,
            cashier_id=cashier_id,
            status=SHIFT_OPEN,
            opening_balance_cents=opening_balance_cents,
            opened_at=utcnow(),
            notes=notes,
        )
        db.session.add(shift)
        db.session.flush()
        logger.info("Opened shift %s on till %s for cashier %s", shift.id, till.id, cashier_id)
        return shift

    return run_in_transaction(_op)


def get_current_shift(cashier_id: int) -> Shift | None:
    return db.session.query(Shift).filter_by(cashier_id=cashier_id, status=SHIFT_OPEN).first()


# =============================================================================
# CASH MOVEMENTS
# =============================================================================

def add_cash_movement(
    *,
    shift_id: int,
    movement_type: str,
    amount_cents: int,
    currency_id: int,
    reason: str,
    actor_id: int,
) -> CashMovement:
    """Record a pending cash movement on an open shift."""
    def _op():
        shift = _get_shift_locked(shift_id)
        _require_open(shift, "add cash movement")

        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(
                f"Invalid movement type: {movement_type}",
                details={"allowed": list(MOVEMENT_TYPES)},
            )
        if amount_cents is None or amount_cents <= 0:
            raise ValidationError("Amount must be greater than zero", details={"amount_cents": amount_cents})
        if not reason or not reason.strip():
            raise ValidationError("Reason is required")
        if db.session.get(Currency, currency_id) is None:
            raise NotFoundError("Currency not found", details={"currency_id": currency_id})

        movement = CashMovement(
            shift_id=shift.id,
            movement_type=movement_type,
            amount_cents=amount_cents,
            currency_id=currency_id,
            reason=reason.strip(),
            created_by=actor_id,
            created_at=utcnow(),
        )
        db.session.add(movement)
        db.session.flush()
        logger.info("Cash movement %s (%s %s) pending on shift %s", movement.id, movement_type, amount_cents, shift.id)
        return movement

    return run_in_transaction(_op)


def approve_cash_movement(movement_id: int, approver_id: int) -> CashMovement:
    """
    Approve a pending movement. One-way; the approver is only recorded,
    authorization happens upstream.
    """
    def _op():
        movement = lock_for_update(db.session.query(CashMovement).filter_by(id=movement_id)).first()
        if movement is None:
            raise NotFoundError("Cash movement not found", details={"movement_id": movement_id})
        if movement.is_approved:
            raise InvalidStateTransition(
                "Cash movement is already approved",
                details={"movement_id": movement_id, "approved_by": movement.approved_by},
            )
        _require_open(movement.shift, "approve cash movement")

        movement.approved_by = approver_id
        movement.approved_at = utcnow()
        db.session.flush()
        logger.info("Cash movement %s approved by %s", movement.id, approver_id)
        return movement

    return run_in_transaction(_op)


def list_pending_movements(shift_id: int) -> list[CashMovement]:
    return (
        db.session.query(CashMovement)
        .filter(CashMovement.shift_id == shift_id, CashMovement.approved_by.is_(None))
        .order_by(CashMovement.id)
        .all()
    )


def list_movements(shift_id: int) -> list[CashMovement]:
    return db.session.query(CashMovement).filter_by(shift_id=shift_id).order_by(CashMovement.id).all()


# =============================================================================
# EXPECTED CASH / CLOSE
# =============================================================================

def calculate_expected_cash(shift: Shift) -> ExpectedCash:
    """
    expected = opening + cash payments + cash_in - cash_out - petty_cash - bank_deposits

    Cash payments use their snapshotted base amount. Approved movements are
    converted at each currency's current rate.
    """
    cash = get_cash_context()

    cash_payments = (
        db.session.query(func.coalesce(func.sum(Payment.amount_base_cents), 0))
        .filter(
            Payment.shift_id == shift.id,
            Payment.payment_method_id == cash.cash_payment_method_id,
        )
        .scalar()
    )

    totals = {kind: 0 for kind in MOVEMENT_TYPES}
    movements = (
        db.session.query(CashMovement)
        .filter(CashMovement.shift_id == shift.id, CashMovement.approved_by.isnot(None))
        .all()
    )
    for movement in movements:
        totals[movement.movement_type] += to_base_cents(movement.amount_cents, movement.currency.exchange_rate)

    expected = (
        shift.opening_balance_cents
        + int(cash_payments)
        + totals[MOVEMENT_CASH_IN]
        - totals[MOVEMENT_CASH_OUT]
        - totals[MOVEMENT_PETTY_CASH]
        - totals[MOVEMENT_BANK_DEPOSIT]
    )
    return ExpectedCash(
        opening_balance_cents=shift.opening_balance_cents,
        cash_payments_cents=int(cash_payments),
        cash_in_cents=totals[MOVEMENT_CASH_IN],
        cash_out_cents=totals[MOVEMENT_CASH_OUT],
        petty_cash_cents=totals[MOVEMENT_PETTY_CASH],
        bank_deposits_cents=totals[MOVEMENT_BANK_DEPOSIT],
        expected_cash_cents=expected,
    )


def close_shift(
    shift_id: int,
    *,
    closing_balance_cents: int,
    actor_id: int | None = None,
    notes: str | None = None,
):
    """
    Close a shift and roll it into the branch day-end.

    The shift close and the day-end create/attach/recalculate are one unit:
    if the day-end cannot accept the shift (approved and locked), the shift
    stays open.

    Returns:
        (shift, day_end)

    Raises:
        InvalidStateTransition: shift not open, or movements still pending
        EditWindowExpired: the day-end for that date is approved and past
            its edit window
    """
    def _op():
        shift = _get_shift_locked(shift_id)
        _require_open(shift, "close shift")
        if closing_balance_cents is None or closing_balance_cents < 0:
            raise ValidationError("Closing balance cannot be negative")

        pending = list_pending_movements(shift.id)
        if pending:
            raise InvalidStateTransition(
                "Cannot close shift with pending cash movements",
                details={"shift_id": shift.id, "pending_movement_ids": [m.id for m in pending]},
            )

        breakdown = calculate_expected_cash(shift)
        shift.expected_cash_cents = breakdown.expected_cash_cents
        shift.closing_balance_cents = closing_balance_cents
        shift.variance_cents = closing_balance_cents - breakdown.expected_cash_cents
        shift.status = SHIFT_CLOSED
        shift.closed_at = utcnow()
        shift.closed_by = actor_id
        if notes:
            shift.notes = f"{shift.notes}\n{notes}" if shift.notes else notes
        db.session.flush()

        day_end = day_end_service.attach_shift_locked(shift, actor_id)
        logger.info(
            "Closed shift %s: expected=%s counted=%s variance=%s day_end=%s",
            shift.id, shift.expected_cash_cents, closing_balance_cents, shift.variance_cents, day_end.id,
        )
        return shift, day_end

    return run_in_transaction(_op)


# =============================================================================
# READS
# =============================================================================

def get_shift(shift_id: int) -> Shift:
    shift = db.session.get(Shift, shift_id)
    if shift is None:
        raise NotFoundError("Shift not found", details={"shift_id": shift_id})
    return shift


def list_shifts(
    *,
    branch_id: int | None = None,
    till_id: int | None = None,
    cashier_id: int | None = None,
    status: str | None = None,
    limit: int = 100,
) -> list[Shift]:
    query = db.session.query(Shift)
    if branch_id is not None:
        query = query.filter(Shift.branch_id == branch_id)
    if till_id is not None:
        query = query.filter(Shift.till_id == till_id)
    if cashier_id is not None:
        query = query.filter(Shift.cashier_id == cashier_id)
    if status:
        query = query.filter(Shift.status == status)
    return query.order_by(Shift.opened_at.desc()).limit(max(1, min(limit, 500))).all()


def get_shift_summary(shift_id: int) -> dict:
    """Shift with its expected-cash breakdown, movements and payment count."""
    shift = get_shift(shift_id)
    payment_count = db.session.query(func.count(Payment.id)).filter(Payment.shift_id == shift.id).scalar()
    return {
        "shift": shift.to_dict(),
        "expected_cash": calculate_expected_cash(shift).to_dict(),
        "movements": [m.to_dict() for m in list_movements(shift.id)],
        "payment_count": int(payment_count or 0),
    }
