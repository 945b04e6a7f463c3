"""
Quotation workflow: non-binding, price-locked offers.

LIFECYCLE:
    draft -> sent -> accepted | rejected | expired
    draft -> rejected

Expiry is evaluated lazily: any read of a sent quotation past its
expiry_date flips it to expired (and persists the flip) before returning it.
Quotations never touch inventory.

An accepted quotation carries exactly the quoted prices into the new sale or
layby. An expired quotation never converts; recreate_quotation re-quotes the
same items at current catalog prices.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Sequence

from ..extensions import db
from ..errors import InvalidStateTransition, NotFoundError, ValidationError
from ..models import Quotation, QuotationItem
from ..models.sales import (
    QUOTATION_ACCEPTED,
    QUOTATION_DRAFT,
    QUOTATION_EXPIRED,
    QUOTATION_REJECTED,
    QUOTATION_SENT,
    SALE_TYPE_CREDIT,
)
from ..time_utils import utcnow
from . import customer_service, layby_service, sales_service
from .cart_service import (
    CartItem, apply_cart, get_active_branch, items_from_document, order_discount_for_update, price_cart, price_locked,
)
from .concurrency import lock_for_update, run_in_transaction
from .document_service import SERIES_QUOTATION, next_document_number
from .settings_service import get_effective_settings

logger = logging.getLogger(__name__)


def _get_quotation_locked(quotation_id: int) -> Quotation:
    quotation = lock_for_update(db.session.query(Quotation).filter_by(id=quotation_id)).first()
    if quotation is None:
        raise NotFoundError("Quotation not found", details={"quotation_id": quotation_id})
    return quotation


def _require_status(quotation: Quotation, allowed: Sequence[str], action: str) -> None:
    if quotation.status not in allowed:
        raise InvalidStateTransition(
            f"Cannot {action} quotation with status {quotation.status}",
            details={"quotation_id": quotation.id, "status": quotation.status, "allowed": list(allowed)},
        )


def _expire_if_due(quotation: Quotation, now: datetime) -> bool:
    """sent and past expiry -> expired. Returns True when the status flipped."""
    if quotation.status == QUOTATION_SENT and now > quotation.expiry_date:
        quotation.status = QUOTATION_EXPIRED
        logger.info("Quotation %s expired", quotation.quotation_number)
        return True
    return False


def _validity_days(branch_id: int, validity_days: int | None) -> int:
    if validity_days is None:
        return get_effective_settings(branch_id).quotation_validity_days
    if validity_days <= 0:
        raise ValidationError("Validity days must be greater than zero", details={"validity_days": validity_days})
    return validity_days


def _create_quotation_locked(
    *,
    branch_id: int,
    customer_id: int,
    items: Sequence[CartItem],
    actor_id: int | None,
    discount_id: int | None,
    validity_days: int | None,
    notes: str | None,
    recreated_from_id: int | None = None,
) -> Quotation:
    get_active_branch(branch_id)
    customer_service.get_active_customer(customer_id)
    settings = get_effective_settings(branch_id)
    cart = price_cart(branch_id=branch_id, items=items, settings=settings, order_discount_id=discount_id)

    quotation_date = utcnow()
    quotation = Quotation(
        quotation_number=next_document_number(series=SERIES_QUOTATION, year=quotation_date.year),
        branch_id=branch_id,
        customer_id=customer_id,
        status=QUOTATION_DRAFT,
        quotation_date=quotation_date,
        expiry_date=quotation_date + timedelta(days=_validity_days(branch_id, validity_days)),
        notes=notes,
        recreated_from_id=recreated_from_id,
        created_by=actor_id,
    )
    apply_cart(quotation, cart, QuotationItem)
    db.session.add(quotation)
    db.session.flush()
    return quotation


# =============================================================================
# CREATE / UPDATE / SEND / REJECT
# =============================================================================

def create_quotation(
    *,
    branch_id: int,
    customer_id: int,
    items: Sequence[CartItem],
    actor_id: int | None,
    discount_id: int | None = None,
    validity_days: int | None = None,
    notes: str | None = None,
) -> Quotation:
    """
    Create a draft quotation at current prices.

    expiry_date = quotation_date + validity_days (explicit value, else
    branch override, else tenant default).
    """
    def _op():
        quotation = _create_quotation_locked(
            branch_id=branch_id,
            customer_id=customer_id,
            items=items,
            actor_id=actor_id,
            discount_id=discount_id,
            validity_days=validity_days,
            notes=notes,
        )
        logger.info("Created quotation %s (total=%s)", quotation.quotation_number, quotation.total_cents)
        return quotation

    return run_in_transaction(_op)


def update_quotation(
    quotation_id: int,
    *,
    items: Sequence[CartItem] | None = None,
    discount_id: int | None = None,
    clear_discount: bool = False,
    validity_days: int | None = None,
    notes: str | None = None,
) -> Quotation:
    def _op():
        quotation = _get_quotation_locked(quotation_id)
        _require_status(quotation, (QUOTATION_DRAFT,), "update")

        settings = get_effective_settings(quotation.branch_id)
        cart = price_cart(
            branch_id=quotation.branch_id,
            items=items if items is not None else items_from_document(quotation),
            settings=settings,
            order_discount_id=order_discount_for_update(quotation.discount_id, discount_id, clear_discount),
        )
        apply_cart(quotation, cart, QuotationItem)
        if validity_days is not None:
            quotation.expiry_date = quotation.quotation_date + timedelta(
                days=_validity_days(quotation.branch_id, validity_days)
            )
        if notes is not None:
            quotation.notes = notes
        db.session.flush()
        return quotation

    return run_in_transaction(_op)


def send_quotation(quotation_id: int, actor_id: int | None = None) -> Quotation:
    def _op():
        quotation = _get_quotation_locked(quotation_id)
        _require_status(quotation, (QUOTATION_DRAFT,), "send")
        quotation.status = QUOTATION_SENT
        quotation.sent_at = utcnow()
        db.session.flush()
        logger.info("Sent quotation %s", quotation.quotation_number)
        return quotation

    return run_in_transaction(_op)


def reject_quotation(quotation_id: int, reason: str | None = None) -> Quotation:
    """draft|sent -> rejected; the reason is appended to the notes."""
    def _op():
        quotation = _get_quotation_locked(quotation_id)
        _expire_if_due(quotation, utcnow())
        _require_status(quotation, (QUOTATION_DRAFT, QUOTATION_SENT), "reject")

        if reason:
            prefix = f"{quotation.notes}. " if quotation.notes else ""
            quotation.notes = f"{prefix}Rejection reason: {reason}"
        quotation.status = QUOTATION_REJECTED
        db.session.flush()
        return quotation

    return run_in_transaction(_op)


# =============================================================================
# CONVERSION
# =============================================================================

def _require_convertible(quotation: Quotation) -> None:
    _expire_if_due(quotation, utcnow())
    if quotation.status == QUOTATION_EXPIRED:
        raise InvalidStateTransition(
            "Quotation has expired; recreate it with current prices",
            details={"quotation_id": quotation.id, "status": quotation.status},
        )
    _require_status(quotation, (QUOTATION_SENT,), "convert")


def _converted_note(quotation: Quotation) -> str:
    note = f"Converted from quotation {quotation.quotation_number}"
    if quotation.notes:
        note += f". Original notes: {quotation.notes}"
    return note


def convert_to_sale(quotation_id: int, actor_id: int | None = None):
    """
    Turn a sent, unexpired quotation into a draft credit sale at the quoted prices.

    Returns:
        (quotation, sale)
    """
    def _op():
        quotation = _get_quotation_locked(quotation_id)
        _require_convertible(quotation)

        sale = sales_service.create_sale_locked(
            branch_id=quotation.branch_id,
            customer_id=quotation.customer_id,
            sale_type=SALE_TYPE_CREDIT,
            cart=price_locked(quotation),
            actor_id=actor_id,
            notes=_converted_note(quotation),
            quotation_id=quotation.id,
        )

        quotation.status = QUOTATION_ACCEPTED
        quotation.converted_to_sale_id = sale.id
        quotation.converted_at = utcnow()
        db.session.flush()
        logger.info("Quotation %s converted to sale %s", quotation.quotation_number, sale.invoice_number)
        return quotation, sale

    return run_in_transaction(_op)


def convert_to_layby(quotation_id: int, actor_id: int | None = None):
    """
    Turn a sent, unexpired quotation into a draft layby at the quoted prices.

    Deposit and cancellation fee come from the branch's current settings.

    Returns:
        (quotation, layby)
    """
    def _op():
        quotation = _get_quotation_locked(quotation_id)
        _require_convertible(quotation)

        layby = layby_service.create_layby_locked(
            branch_id=quotation.branch_id,
            customer_id=quotation.customer_id,
            cart=price_locked(quotation),
            settings=get_effective_settings(quotation.branch_id),
            actor_id=actor_id,
            notes=_converted_note(quotation),
            quotation_id=quotation.id,
        )

        quotation.status = QUOTATION_ACCEPTED
        quotation.converted_to_layby_id = layby.id
        quotation.converted_at = utcnow()
        db.session.flush()
        logger.info("Quotation %s converted to layby %s", quotation.quotation_number, layby.layby_number)
        return quotation, layby

    return run_in_transaction(_op)


def recreate_quotation(quotation_id: int, actor_id: int | None = None, validity_days: int | None = None) -> Quotation:
    """
    Re-quote an expired quotation: same items and quantities, current prices.

    Returns the new draft quotation; the expired one is left untouched.
    """
    def _op():
        expired = _get_quotation_locked(quotation_id)
        _expire_if_due(expired, utcnow())
        _require_status(expired, (QUOTATION_EXPIRED,), "recreate")

        note = f"Recreated from expired quotation {expired.quotation_number}"
        if expired.notes:
            note += f". Original notes: {expired.notes}"

        quotation = _create_quotation_locked(
            branch_id=expired.branch_id,
            customer_id=expired.customer_id,
            items=items_from_document(expired),
            actor_id=actor_id,
            discount_id=expired.discount_id,
            validity_days=validity_days,
            notes=note,
            recreated_from_id=expired.id,
        )
        logger.info("Recreated quotation %s as %s", expired.quotation_number, quotation.quotation_number)
        return quotation

    return run_in_transaction(_op)


# =============================================================================
# READS (apply lazy expiry)
# =============================================================================

def get_quotation(quotation_id: int) -> Quotation:
    """Return the quotation, flipping a sent one past expiry to expired first."""
    def _op():
        quotation = db.session.get(Quotation, quotation_id)
        if quotation is None:
            raise NotFoundError("Quotation not found", details={"quotation_id": quotation_id})
        _expire_if_due(quotation, utcnow())
        return quotation

    return run_in_transaction(_op)


def list_quotations(
    *,
    branch_id: int | None = None,
    status: str | None = None,
    customer_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Quotation], int]:
    """
    List quotations; sent ones past expiry are expired before filtering so a
    status=sent filter never returns a stale offer.
    """
    def _op():
        now = utcnow()
        stale = (
            db.session.query(Quotation)
            .filter(Quotation.status == QUOTATION_SENT, Quotation.expiry_date < now)
        )
        if branch_id is not None:
            stale = stale.filter(Quotation.branch_id == branch_id)
        for quotation in stale.all():
            _expire_if_due(quotation, now)
        db.session.flush()

        query = db.session.query(Quotation)
        if branch_id is not None:
            query = query.filter(Quotation.branch_id == branch_id)
        if status:
            query = query.filter(Quotation.status == status)
        if customer_id is not None:
            query = query.filter(Quotation.customer_id == customer_id)

        total = query.count()
        rows = (
            query.order_by(Quotation.id.desc())
            .offset(max(0, offset))
            .limit(max(1, min(limit, 500)))
            .all()
        )
        return rows, total

    return run_in_transaction(_op)
