# Overview: Shared payment ledger for sales and laybys.

"""
Payment recording.

WHY: Sales and laybys take money the same way: an amount in some currency,
converted to base currency at the rate of the moment, checked against the
amount still due, and stamped with a year-scoped receipt number.

DESIGN PRINCIPLES:
- Payments are immutable; corrections are new payments
- A payment targets exactly one sale or one layby (SaleTarget | LaybyTarget)
- Payments taken by a cashier with an open shift at the branch are linked
  to that shift, so shift close and day-end can find them
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..errors import InvalidStateTransition, NotFoundError, PaymentExceedsDue, ValidationError
from ..models import Currency, Payment, PaymentMethod, PaymentTarget, Shift, SaleTarget, LaybyTarget
from ..models.registers import SHIFT_OPEN
from ..time_utils import utcnow
from .document_service import SERIES_RECEIPT, next_document_number
from .pricing_service import round_cents


@dataclass(frozen=True)
class PaymentRequest:
    amount_cents: int
    currency_id: int
    payment_method_id: int
    shift_id: int | None = None
    reference_number: str | None = None
    notes: str | None = None
    payment_date: datetime | None = None


def payment_tolerance_cents() -> int:
    return current_app.config.get("PAYMENT_TOLERANCE_CENTS", 1)


def require_positive_amount(amount_cents: int | None) -> None:
    if amount_cents is None or amount_cents <= 0:
        raise ValidationError("Payment amount must be greater than zero", details={"amount_cents": amount_cents})


def to_base_cents(amount_cents: int, exchange_rate) -> int:
    return round_cents(Decimal(amount_cents) * Decimal(exchange_rate))


def get_active_currency(currency_id: int) -> Currency:
    currency = db.session.get(Currency, currency_id)
    if currency is None:
        raise NotFoundError("Currency not found", details={"currency_id": currency_id})
    if not currency.is_active:
        raise ValidationError("Currency is inactive", details={"currency_id": currency_id})
    return currency


def get_active_payment_method(payment_method_id: int) -> PaymentMethod:
    method = db.session.get(PaymentMethod, payment_method_id)
    if method is None:
        raise NotFoundError("Payment method not found", details={"payment_method_id": payment_method_id})
    if not method.is_active:
        raise ValidationError("Payment method is inactive", details={"payment_method_id": payment_method_id})
    return method


def _resolve_shift(shift_id: int | None, branch_id: int, actor_id: int | None) -> Shift | None:
    if shift_id is not None:
        shift = db.session.get(Shift, shift_id)
        if shift is None:
            raise NotFoundError("Shift not found", details={"shift_id": shift_id})
        if shift.status != SHIFT_OPEN:
            raise InvalidStateTransition("Cannot take payments on a closed shift", details={"shift_id": shift_id})
        if shift.branch_id != branch_id:
            raise ValidationError(
                "Shift belongs to a different branch",
                details={"shift_id": shift_id, "branch_id": branch_id},
            )
        return shift

    if actor_id is None:
        return None
    return (
        db.session.query(Shift)
        .filter_by(cashier_id=actor_id, branch_id=branch_id, status=SHIFT_OPEN)
        .first()
    )


def record_payment_locked(
    *,
    target: PaymentTarget,
    document,
    request: PaymentRequest,
    actor_id: int | None,
) -> Payment:
    """
    Record a payment against a locked sale/layby and update its balance.

    Args:
        target: SaleTarget or LaybyTarget pointing at ``document``
        document: the locked Sale or Layby row (amount_paid/amount_due/total)
        request: amount, currency, method and optional shift/reference
        actor_id: caller id, used for attribution and shift lookup

    Raises:
        ValidationError: non-positive amount, inactive currency/method
        PaymentExceedsDue: base amount exceeds amount due beyond tolerance

    The applied amount is capped at the amount due so that
    amount_paid + amount_due == total holds exactly even when a payment
    lands within the rounding tolerance above the balance.
    """
    require_positive_amount(request.amount_cents)

    currency = get_active_currency(request.currency_id)
    get_active_payment_method(request.payment_method_id)
    shift = _resolve_shift(request.shift_id, document.branch_id, actor_id)

    rate = Decimal(currency.exchange_rate)
    base_cents = to_base_cents(request.amount_cents, rate)
    tolerance = payment_tolerance_cents()
    if base_cents > document.amount_due_cents + tolerance:
        raise PaymentExceedsDue(
            "Payment exceeds amount due",
            details={
                "amount_base_cents": base_cents,
                "amount_due_cents": document.amount_due_cents,
            },
        )

    now = utcnow()
    payment_date = request.payment_date or now
    payment = Payment(
        receipt_number=next_document_number(series=SERIES_RECEIPT, year=payment_date.year),
        branch_id=document.branch_id,
        shift_id=shift.id if shift else None,
        amount_cents=request.amount_cents,
        currency_id=currency.id,
        exchange_rate=rate,
        amount_base_cents=base_cents,
        payment_method_id=request.payment_method_id,
        reference_number=request.reference_number,
        notes=request.notes,
        payment_date=payment_date,
        created_by=actor_id,
    )
    payment.target = target
    db.session.add(payment)

    applied = min(base_cents, document.amount_due_cents)
    document.amount_paid_cents += applied
    document.amount_due_cents = document.total_cents - document.amount_paid_cents

    db.session.flush()
    return payment


def is_settled(document) -> bool:
    return document.amount_due_cents <= payment_tolerance_cents()


def list_payments(target: PaymentTarget) -> list[Payment]:
    query = db.session.query(Payment)
    if isinstance(target, SaleTarget):
        query = query.filter(Payment.sale_id == target.sale_id)
    elif isinstance(target, LaybyTarget):
        query = query.filter(Payment.layby_id == target.layby_id)
    else:
        raise TypeError(f"Unsupported payment target: {target!r}")
    return query.order_by(Payment.id).all()
