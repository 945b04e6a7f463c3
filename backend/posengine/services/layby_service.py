"""
Layby workflow: deposit-based reservation sales.

WHY: The customer pays over time while the goods are held. Activation
reserves stock per line and flags it, so a later cancellation knows exactly
which lines to put back; a layby cancelled before activation returns
nothing because nothing was taken.

LIFECYCLE:
    draft -> active -> partially_paid -> fully_paid -> collected
    draft | active | partially_paid | fully_paid -> cancelled

RULES:
- The first payment must meet deposit_required_cents
- Cancellation refund = max(0, amount_paid - cancellation_fee); the refund
  is reported to the caller, paying it out happens outside this engine
- Items can only be changed while the layby is a draft with nothing paid
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from ..extensions import db
from ..errors import DepositBelowMinimum, InvalidStateTransition, NotFoundError, ValidationError
from ..models import Layby, LaybyItem, LaybyTarget
from ..models.sales import (
    LAYBY_ACTIVE,
    LAYBY_CANCELLED,
    LAYBY_COLLECTED,
    LAYBY_DRAFT,
    LAYBY_FULLY_PAID,
    LAYBY_PARTIALLY_PAID,
)
from ..time_utils import utcnow
from . import customer_service, inventory_service, payment_service
from .cart_service import (
    CartItem, PricedCart, apply_cart, get_active_branch, order_discount_for_update, price_cart,
)
from .concurrency import lock_for_update, run_in_transaction
from .document_service import SERIES_LAYBY, next_document_number
from .payment_service import PaymentRequest
from .pricing_service import percent_of
from .settings_service import EffectiveSettings, get_effective_settings

logger = logging.getLogger(__name__)

PAYABLE_STATUSES = (LAYBY_ACTIVE, LAYBY_PARTIALLY_PAID)
CANCELLABLE_STATUSES = (LAYBY_DRAFT, LAYBY_ACTIVE, LAYBY_PARTIALLY_PAID, LAYBY_FULLY_PAID)
OPEN_STATUSES = (LAYBY_ACTIVE, LAYBY_PARTIALLY_PAID, LAYBY_FULLY_PAID)


@dataclass(frozen=True)
class LaybyCancellation:
    layby: Layby
    refund_cents: int
    items_returned: int


def _get_layby_locked(layby_id: int) -> Layby:
    layby = lock_for_update(db.session.query(Layby).filter_by(id=layby_id)).first()
    if layby is None:
        raise NotFoundError("Layby not found", details={"layby_id": layby_id})
    return layby


def _require_status(layby: Layby, allowed: Sequence[str], action: str) -> None:
    if layby.status not in allowed:
        raise InvalidStateTransition(
            f"Cannot {action} layby with status {layby.status}",
            details={"layby_id": layby.id, "status": layby.status, "allowed": list(allowed)},
        )


def deposit_for_total(total_cents: int, deposit_bps: int) -> int:
    return percent_of(total_cents, deposit_bps)


def _apply_terms(layby: Layby, settings: EffectiveSettings) -> None:
    layby.deposit_required_cents = deposit_for_total(layby.total_cents, settings.layby_deposit_bps)
    layby.cancellation_fee_cents = settings.cancellation_fee_cents


# =============================================================================
# CREATE / UPDATE
# =============================================================================

def create_layby_locked(
    *,
    branch_id: int,
    customer_id: int,
    cart: PricedCart,
    settings: EffectiveSettings,
    actor_id: int | None,
    notes: str | None = None,
    quotation_id: int | None = None,
    layby_date: datetime | None = None,
) -> Layby:
    customer_service.get_active_customer(customer_id)
    layby_date = layby_date or utcnow()
    layby = Layby(
        layby_number=next_document_number(series=SERIES_LAYBY, year=layby_date.year),
        branch_id=branch_id,
        customer_id=customer_id,
        status=LAYBY_DRAFT,
        layby_date=layby_date,
        notes=notes,
        quotation_id=quotation_id,
        created_by=actor_id,
    )
    apply_cart(layby, cart, LaybyItem)
    layby.amount_paid_cents = 0
    layby.amount_due_cents = layby.total_cents
    _apply_terms(layby, settings)
    db.session.add(layby)
    db.session.flush()
    return layby


def create_layby(
    *,
    branch_id: int,
    customer_id: int,
    items: Sequence[CartItem],
    actor_id: int | None,
    discount_id: int | None = None,
    notes: str | None = None,
) -> Layby:
    """Create a draft layby; deposit and cancellation fee come from branch settings."""
    def _op():
        get_active_branch(branch_id)
        settings = get_effective_settings(branch_id)
        cart = price_cart(branch_id=branch_id, items=items, settings=settings, order_discount_id=discount_id)
        layby = create_layby_locked(
            branch_id=branch_id,
            customer_id=customer_id,
            cart=cart,
            settings=settings,
            actor_id=actor_id,
            notes=notes,
        )
        logger.info(
            "Created layby %s (total=%s deposit=%s)",
            layby.layby_number, layby.total_cents, layby.deposit_required_cents,
        )
        return layby

    return run_in_transaction(_op)


def update_layby(
    layby_id: int,
    *,
    items: Sequence[CartItem] | None = None,
    discount_id: int | None = None,
    clear_discount: bool = False,
    notes: str | None = None,
    actor_id: int | None = None,
) -> Layby:
    """Re-price a draft layby that has nothing paid against it."""
    def _op():
        layby = _get_layby_locked(layby_id)
        _require_status(layby, (LAYBY_DRAFT,), "update")
        if layby.amount_paid_cents != 0:
            raise InvalidStateTransition(
                "Cannot update a layby with payments",
                details={"layby_id": layby.id, "amount_paid_cents": layby.amount_paid_cents},
            )

        if notes is not None:
            layby.notes = notes

        settings = get_effective_settings(layby.branch_id)
        new_items = items
        if new_items is None:
            new_items = [
                CartItem(product_id=i.product_id, quantity=i.quantity, discount_id=i.discount_id)
                for i in layby.items
            ]
        cart = price_cart(
            branch_id=layby.branch_id,
            items=new_items,
            settings=settings,
            order_discount_id=order_discount_for_update(layby.discount_id, discount_id, clear_discount),
        )
        apply_cart(layby, cart, LaybyItem)
        layby.amount_due_cents = layby.total_cents
        _apply_terms(layby, settings)
        db.session.flush()
        logger.info("Updated draft layby %s by %s", layby.layby_number, actor_id)
        return layby

    return run_in_transaction(_op)


# =============================================================================
# ACTIVATE / PAY / COLLECT
# =============================================================================

def activate_layby(layby_id: int, actor_id: int | None = None) -> Layby:
    """
    Reserve stock for every item and move draft -> active.

    Raises:
        InsufficientStock / NoInventoryRecord: nothing is reserved
    """
    def _op():
        layby = _get_layby_locked(layby_id)
        _require_status(layby, (LAYBY_DRAFT,), "activate")
        if not layby.items:
            raise ValidationError("Cannot activate a layby with no items", details={"layby_id": layby.id})

        now = utcnow()
        inventory_service.reserve_items_locked(
            branch_id=layby.branch_id,
            items=layby.items,
            reference_type="layby",
            reference_id=layby.id,
            actor_id=actor_id,
            occurred_at=now,
        )
        layby.status = LAYBY_ACTIVE
        layby.activated_at = now
        db.session.flush()
        logger.info("Activated layby %s", layby.layby_number)
        return layby

    return run_in_transaction(_op)


def add_layby_payment(layby_id: int, request: PaymentRequest, actor_id: int | None = None):
    """
    Record an instalment.

    Raises:
        ValidationError: missing or non-positive amount
        DepositBelowMinimum: first payment is less than deposit_required_cents
        PaymentExceedsDue: payment is more than what is left

    Returns:
        (layby, payment)
    """
    def _op():
        layby = _get_layby_locked(layby_id)
        _require_status(layby, PAYABLE_STATUSES, "add payment to")

        payment_service.require_positive_amount(request.amount_cents)
        if layby.amount_paid_cents == 0:
            currency = payment_service.get_active_currency(request.currency_id)
            base_cents = payment_service.to_base_cents(request.amount_cents, currency.exchange_rate)
            if base_cents < layby.deposit_required_cents:
                raise DepositBelowMinimum(
                    "First payment must cover the required deposit",
                    details={
                        "amount_base_cents": base_cents,
                        "deposit_required_cents": layby.deposit_required_cents,
                    },
                )

        payment = payment_service.record_payment_locked(
            target=LaybyTarget(layby.id),
            document=layby,
            request=request,
            actor_id=actor_id,
        )
        layby.status = LAYBY_FULLY_PAID if payment_service.is_settled(layby) else LAYBY_PARTIALLY_PAID
        db.session.flush()
        logger.info(
            "Payment %s on layby %s: paid=%s due=%s",
            payment.receipt_number, layby.layby_number, layby.amount_paid_cents, layby.amount_due_cents,
        )
        return layby, payment

    return run_in_transaction(_op)


def collect_layby(layby_id: int, actor_id: int | None = None) -> Layby:
    """Hand the goods over: fully_paid -> collected."""
    def _op():
        layby = _get_layby_locked(layby_id)
        _require_status(layby, (LAYBY_FULLY_PAID,), "collect")

        now = utcnow()
        layby.status = LAYBY_COLLECTED
        layby.collected_at = now
        layby.collected_by = actor_id
        customer_service.touch_last_purchase(layby.customer_id, now)
        db.session.flush()
        logger.info("Collected layby %s", layby.layby_number)
        return layby

    return run_in_transaction(_op)


# =============================================================================
# CANCEL
# =============================================================================

def calculate_refund(amount_paid_cents: int, cancellation_fee_cents: int) -> int:
    return max(0, amount_paid_cents - (cancellation_fee_cents or 0))


def cancel_layby(layby_id: int, *, actor_id: int | None = None, reason: str | None = None) -> LaybyCancellation:
    """
    Cancel a layby and return reserved stock.

    The refund figure and the stock return are one unit: if any reserved
    line cannot be returned, the layby stays as it was.
    """
    def _op():
        layby = _get_layby_locked(layby_id)
        _require_status(layby, CANCELLABLE_STATUSES, "cancel")

        now = utcnow()
        returned = inventory_service.release_items_locked(
            branch_id=layby.branch_id,
            items=layby.items,
            reference_type="layby",
            reference_id=layby.id,
            actor_id=actor_id,
            occurred_at=now,
        )
        refund = calculate_refund(layby.amount_paid_cents, layby.cancellation_fee_cents)

        layby.status = LAYBY_CANCELLED
        layby.cancelled_at = now
        layby.cancelled_by = actor_id
        layby.cancellation_reason = reason
        layby.refund_amount_cents = refund
        db.session.flush()
        logger.info(
            "Cancelled layby %s: refund=%s items_returned=%s",
            layby.layby_number, refund, returned,
        )
        return LaybyCancellation(layby=layby, refund_cents=refund, items_returned=returned)

    return run_in_transaction(_op)


# =============================================================================
# READS
# =============================================================================

def get_layby(layby_id: int) -> Layby:
    layby = db.session.get(Layby, layby_id)
    if layby is None:
        raise NotFoundError("Layby not found", details={"layby_id": layby_id})
    return layby


def list_laybys(
    *,
    branch_id: int | None = None,
    status: str | None = None,
    customer_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Layby], int]:
    query = db.session.query(Layby)
    if branch_id is not None:
        query = query.filter(Layby.branch_id == branch_id)
    if status:
        query = query.filter(Layby.status == status)
    if customer_id is not None:
        query = query.filter(Layby.customer_id == customer_id)

    total = query.count()
    limit = max(1, min(limit, 500))
    offset = max(0, offset)
    return query.order_by(Layby.id.desc()).offset(offset).limit(limit).all(), total


def list_active_laybys(branch_id: int | None = None) -> list[Layby]:
    """Laybys holding stock: active, partially paid or fully paid awaiting collection."""
    query = db.session.query(Layby).filter(Layby.status.in_(OPEN_STATUSES))
    if branch_id is not None:
        query = query.filter(Layby.branch_id == branch_id)
    return query.order_by(Layby.layby_date).all()


def list_layby_payments(layby_id: int):
    get_layby(layby_id)
    return payment_service.list_payments(LaybyTarget(layby_id))
