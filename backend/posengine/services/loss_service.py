"""
Inventory write-offs (damage, theft, expiry).

A loss is drafted with a cost snapshot per line and only touches stock when
approved; approval deducts every line or fails as a whole.
"""

from __future__ import annotations

import logging
from typing import Sequence

from ..extensions import db
from ..errors import InvalidStateTransition, NotFoundError, ValidationError
from ..models import InventoryLoss, InventoryLossItem
from ..time_utils import utcnow
from .cart_service import get_active_branch, load_active_products
from .concurrency import lock_for_update, run_in_transaction
from .document_service import SERIES_LOSS, next_document_number
from .inventory_service import MOVEMENT_LOSS, StockLine, deduct_stock_locked

logger = logging.getLogger(__name__)

LOSS_DRAFT = "draft"
LOSS_APPROVED = "approved"

LOSS_REASONS = ("damaged", "theft", "expired", "other")


def create_loss(
    *,
    branch_id: int,
    items: Sequence[StockLine],
    reason: str,
    notes: str | None = None,
    actor_id: int | None = None,
) -> InventoryLoss:
    """Draft a loss document. Line cost is the product cost at creation time."""
    if reason not in LOSS_REASONS:
        raise ValidationError(f"Invalid loss reason: {reason}", details={"allowed": list(LOSS_REASONS)})
    if not items:
        raise ValidationError("A loss needs at least one line")
    for line in items:
        if line.quantity <= 0:
            raise ValidationError(
                "Loss quantity must be greater than zero",
                details={"product_id": line.product_id, "quantity": line.quantity},
            )

    def _op():
        branch = get_active_branch(branch_id)
        products = load_active_products(line.product_id for line in items)

        now = utcnow()
        loss = InventoryLoss(
            loss_number=next_document_number(series=SERIES_LOSS, year=now.year),
            branch_id=branch.id,
            reason=reason,
            notes=notes,
            status=LOSS_DRAFT,
            created_by=actor_id,
            created_at=now,
        )
        total = 0
        for line in items:
            unit_cost = products[line.product_id].cost_cents or 0
            line_cost = unit_cost * line.quantity
            total += line_cost
            loss.items.append(InventoryLossItem(
                product_id=line.product_id,
                quantity=line.quantity,
                unit_cost_cents=unit_cost,
                line_cost_cents=line_cost,
            ))
        loss.total_cost_cents = total

        db.session.add(loss)
        db.session.flush()
        logger.info("Drafted inventory loss %s at branch %s (%s lines)", loss.loss_number, branch.id, len(items))
        return loss

    return run_in_transaction(_op)


def approve_loss(loss_id: int, actor_id: int | None = None) -> InventoryLoss:
    """
    Approve a draft loss and write the stock off.

    Raises:
        InvalidStateTransition: loss already approved
        InsufficientStock / NoInventoryRecord: nothing is deducted
    """
    def _op():
        loss = lock_for_update(db.session.query(InventoryLoss).filter_by(id=loss_id)).first()
        if loss is None:
            raise NotFoundError("Inventory loss not found", details={"loss_id": loss_id})
        if loss.status != LOSS_DRAFT:
            raise InvalidStateTransition(
                f"Cannot approve inventory loss with status {loss.status}",
                details={"loss_id": loss.id, "status": loss.status},
            )

        now = utcnow()
        deduct_stock_locked(
            branch_id=loss.branch_id,
            lines=[StockLine(item.product_id, item.quantity) for item in loss.items],
            movement_type=MOVEMENT_LOSS,
            reference_type="inventory_loss",
            reference_id=loss.id,
            actor_id=actor_id,
            occurred_at=now,
        )
        loss.status = LOSS_APPROVED
        loss.approved_by = actor_id
        loss.approved_at = now
        db.session.flush()
        logger.info("Approved inventory loss %s (cost %s)", loss.loss_number, loss.total_cost_cents)
        return loss

    return run_in_transaction(_op)


def get_loss(loss_id: int) -> InventoryLoss:
    loss = db.session.get(InventoryLoss, loss_id)
    if loss is None:
        raise NotFoundError("Inventory loss not found", details={"loss_id": loss_id})
    return loss


def list_losses(*, branch_id: int | None = None, status: str | None = None, limit: int = 100) -> list[InventoryLoss]:
    query = db.session.query(InventoryLoss)
    if branch_id is not None:
        query = query.filter(InventoryLoss.branch_id == branch_id)
    if status:
        query = query.filter(InventoryLoss.status == status)
    return query.order_by(InventoryLoss.id.desc()).limit(max(1, min(limit, 500))).all()
