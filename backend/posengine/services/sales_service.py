"""
Sale workflow: credit sales (invoice, pay later) and till sales.

WHY: A sale is a document with a lifecycle. Creating it prices the cart
but moves no stock; confirming deducts stock for every line in one unit;
payments then walk the balance down to zero.

LIFECYCLE:
    draft -> confirmed -> partially_paid -> fully_paid
    draft -> cancelled
    till: draft -> confirmed -> fully_paid -> completed (one transaction)
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from ..extensions import db
from ..errors import InvalidStateTransition, NotFoundError, ValidationError
from ..models import Sale, SaleItem, SaleTarget
from ..models.sales import (
    SALE_CANCELLED,
    SALE_COMPLETED,
    SALE_CONFIRMED,
    SALE_DRAFT,
    SALE_FULLY_PAID,
    SALE_PARTIALLY_PAID,
    SALE_TYPE_CREDIT,
    SALE_TYPE_TILL,
)
from ..time_utils import utcnow
from . import customer_service, inventory_service, payment_service
from .cart_service import (
    CartItem, PricedCart, apply_cart, get_active_branch, order_discount_for_update, price_cart,
)
from .concurrency import lock_for_update, run_in_transaction
from .document_service import SERIES_INVOICE, next_document_number
from .inventory_service import MOVEMENT_SALE, StockLine
from .payment_service import PaymentRequest
from .settings_service import get_effective_settings

logger = logging.getLogger(__name__)

PAYABLE_STATUSES = (SALE_CONFIRMED, SALE_PARTIALLY_PAID, SALE_FULLY_PAID)


def _get_sale_locked(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def _require_status(sale: Sale, allowed: Sequence[str], action: str) -> None:
    if sale.status not in allowed:
        raise InvalidStateTransition(
            f"Cannot {action} sale with status {sale.status}",
            details={"sale_id": sale.id, "status": sale.status, "allowed": list(allowed)},
        )


# =============================================================================
# CREATE
# =============================================================================

def create_sale_locked(
    *,
    branch_id: int,
    customer_id: int,
    sale_type: str,
    cart: PricedCart,
    actor_id: int | None,
    notes: str | None = None,
    quotation_id: int | None = None,
    sale_date: datetime | None = None,
) -> Sale:
    sale_date = sale_date or utcnow()
    sale = Sale(
        invoice_number=next_document_number(series=SERIES_INVOICE, year=sale_date.year),
        branch_id=branch_id,
        customer_id=customer_id,
        sale_type=sale_type,
        status=SALE_DRAFT,
        sale_date=sale_date,
        notes=notes,
        quotation_id=quotation_id,
        created_by=actor_id,
    )
    apply_cart(sale, cart, SaleItem)
    sale.amount_paid_cents = 0
    sale.amount_due_cents = sale.total_cents
    db.session.add(sale)
    db.session.flush()
    return sale


def _price_for_branch(branch_id: int, items: Sequence[CartItem], discount_id: int | None) -> PricedCart:
    get_active_branch(branch_id)
    settings = get_effective_settings(branch_id)
    return price_cart(branch_id=branch_id, items=items, settings=settings, order_discount_id=discount_id)


def create_credit_sale(
    *,
    branch_id: int,
    customer_id: int,
    items: Sequence[CartItem],
    actor_id: int | None,
    discount_id: int | None = None,
    notes: str | None = None,
    sale_date: datetime | None = None,
) -> Sale:
    """Create a draft credit sale (invoice). No stock effect until confirm."""
    def _op():
        cart = _price_for_branch(branch_id, items, discount_id)
        customer_service.get_active_customer(customer_id)
        sale = create_sale_locked(
            branch_id=branch_id,
            customer_id=customer_id,
            sale_type=SALE_TYPE_CREDIT,
            cart=cart,
            actor_id=actor_id,
            notes=notes,
            sale_date=sale_date,
        )
        logger.info("Created credit sale %s (total=%s)", sale.invoice_number, sale.total_cents)
        return sale

    return run_in_transaction(_op)


# =============================================================================
# CONFIRM / PAY
# =============================================================================

def _confirm_sale_locked(sale: Sale, actor_id: int | None) -> Sale:
    _require_status(sale, (SALE_DRAFT,), "confirm")
    if not sale.items:
        raise ValidationError("Cannot confirm a sale with no items", details={"sale_id": sale.id})

    now = utcnow()
    inventory_service.deduct_stock_locked(
        branch_id=sale.branch_id,
        lines=[StockLine(item.product_id, item.quantity) for item in sale.items],
        movement_type=MOVEMENT_SALE,
        reference_type="sale",
        reference_id=sale.id,
        actor_id=actor_id,
        occurred_at=now,
    )
    customer_service.touch_last_purchase(sale.customer_id, now)

    sale.status = SALE_CONFIRMED
    sale.confirmed_at = now
    db.session.flush()
    return sale


def confirm_sale(sale_id: int, actor_id: int | None = None) -> Sale:
    """
    Confirm a draft sale: deduct stock for every line, then mark confirmed.

    Raises:
        InvalidStateTransition: sale is not draft
        InsufficientStock / NoInventoryRecord: nothing is deducted
    """
    def _op():
        sale = _confirm_sale_locked(_get_sale_locked(sale_id), actor_id)
        logger.info("Confirmed sale %s", sale.invoice_number)
        return sale

    return run_in_transaction(_op)


def _add_payment_locked(sale: Sale, request: PaymentRequest, actor_id: int | None):
    _require_status(sale, PAYABLE_STATUSES, "add payment to")
    payment = payment_service.record_payment_locked(
        target=SaleTarget(sale.id),
        document=sale,
        request=request,
        actor_id=actor_id,
    )
    sale.status = SALE_FULLY_PAID if payment_service.is_settled(sale) else SALE_PARTIALLY_PAID
    db.session.flush()
    return payment


def add_sale_payment(sale_id: int, request: PaymentRequest, actor_id: int | None = None):
    """
    Record a payment against a confirmed/partially/fully paid sale.

    Returns:
        (sale, payment)
    """
    def _op():
        sale = _get_sale_locked(sale_id)
        payment = _add_payment_locked(sale, request, actor_id)
        logger.info(
            "Payment %s on sale %s: paid=%s due=%s status=%s",
            payment.receipt_number, sale.invoice_number,
            sale.amount_paid_cents, sale.amount_due_cents, sale.status,
        )
        return sale, payment

    return run_in_transaction(_op)


# =============================================================================
# TILL SALE (composite)
# =============================================================================

def create_till_sale(
    *,
    branch_id: int,
    items: Sequence[CartItem],
    payments: Sequence[PaymentRequest],
    actor_id: int | None,
    customer_id: int | None = None,
    discount_id: int | None = None,
    notes: str | None = None,
):
    """
    Counter sale: create, confirm, take full payment and complete.

    WHY: From the caller's view this is one operation. It runs as one
    transaction so a stock shortfall, a rejected payment or an
    under-tender leaves nothing behind: no invoice, no deduction, no
    payment rows.

    Args:
        payments: one or more tenders; together they must settle the total

    Returns:
        (sale, [payments])

    Raises:
        ValidationError: no payments, or payments do not cover the total
        plus anything create/confirm/add-payment raise
    """
    if not payments:
        raise ValidationError("A till sale requires at least one payment")

    def _op():
        cart = _price_for_branch(branch_id, items, discount_id)
        if customer_id is None:
            customer = customer_service.get_or_create_walk_in_customer(branch_id)
        else:
            customer = customer_service.get_active_customer(customer_id)

        sale = create_sale_locked(
            branch_id=branch_id,
            customer_id=customer.id,
            sale_type=SALE_TYPE_TILL,
            cart=cart,
            actor_id=actor_id,
            notes=notes,
        )
        _confirm_sale_locked(sale, actor_id)

        recorded = [_add_payment_locked(sale, request, actor_id) for request in payments]

        if sale.status != SALE_FULLY_PAID:
            raise ValidationError(
                "Till sale must be paid in full",
                details={"total_cents": sale.total_cents, "amount_due_cents": sale.amount_due_cents},
            )

        sale.status = SALE_COMPLETED
        sale.completed_at = utcnow()
        db.session.flush()
        logger.info("Completed till sale %s (total=%s)", sale.invoice_number, sale.total_cents)
        return sale, recorded

    return run_in_transaction(_op)


# =============================================================================
# UPDATE / CANCEL
# =============================================================================

def update_sale(
    sale_id: int,
    *,
    items: Sequence[CartItem] | None = None,
    discount_id: int | None = None,
    clear_discount: bool = False,
    customer_id: int | None = None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> Sale:
    """
    Replace items / discount / customer of a draft sale and re-price it.
    ``clear_discount`` drops the order discount.

    Re-pricing uses current catalog prices; the draft has not been
    confirmed so nothing has been promised at the old prices.
    """
    def _op():
        sale = _get_sale_locked(sale_id)
        _require_status(sale, (SALE_DRAFT,), "update")

        if customer_id is not None:
            customer_service.get_active_customer(customer_id)
            sale.customer_id = customer_id
        if notes is not None:
            sale.notes = notes

        new_items = items
        if new_items is None:
            new_items = [
                CartItem(product_id=i.product_id, quantity=i.quantity, discount_id=i.discount_id)
                for i in sale.items
            ]
        order_discount_id = order_discount_for_update(sale.discount_id, discount_id, clear_discount)
        cart = _price_for_branch(sale.branch_id, new_items, order_discount_id)
        apply_cart(sale, cart, SaleItem)
        sale.amount_paid_cents = 0
        sale.amount_due_cents = sale.total_cents
        db.session.flush()
        logger.info("Updated draft sale %s by %s", sale.invoice_number, actor_id)
        return sale

    return run_in_transaction(_op)


def cancel_sale(sale_id: int, actor_id: int | None = None) -> Sale:
    """Cancel a draft sale: items are deleted, the header is kept as cancelled."""
    def _op():
        sale = _get_sale_locked(sale_id)
        _require_status(sale, (SALE_DRAFT,), "cancel")

        sale.items = []
        sale.status = SALE_CANCELLED
        sale.cancelled_at = utcnow()
        sale.cancelled_by = actor_id
        db.session.flush()
        logger.info("Cancelled draft sale %s", sale.invoice_number)
        return sale

    return run_in_transaction(_op)


# =============================================================================
# READS
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def list_sales(
    *,
    branch_id: int | None = None,
    status: str | None = None,
    sale_type: str | None = None,
    customer_id: int | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Sale], int]:
    query = db.session.query(Sale)
    if branch_id is not None:
        query = query.filter(Sale.branch_id == branch_id)
    if status:
        query = query.filter(Sale.status == status)
    if sale_type:
        query = query.filter(Sale.sale_type == sale_type)
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    if from_date:
        query = query.filter(Sale.sale_date >= from_date)
    if to_date:
        query = query.filter(Sale.sale_date <= to_date)

    total = query.count()
    limit = max(1, min(limit, 500))
    offset = max(0, offset)
    rows = query.order_by(Sale.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def list_unpaid_sales(branch_id: int | None = None) -> list[Sale]:
    """Confirmed or partially paid sales with money still owed."""
    query = db.session.query(Sale).filter(
        Sale.status.in_((SALE_CONFIRMED, SALE_PARTIALLY_PAID)),
        Sale.amount_due_cents > 0,
    )
    if branch_id is not None:
        query = query.filter(Sale.branch_id == branch_id)
    return query.order_by(Sale.sale_date).all()


def list_sale_payments(sale_id: int):
    get_sale(sale_id)
    return payment_service.list_payments(SaleTarget(sale_id))
