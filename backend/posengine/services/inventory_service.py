"""
Inventory ledger: per (branch, product) available quantity.

WHY: Sale confirmation, layby activation/cancellation and loss approval all
move stock for several lines at once. Each of those must either move every
line or none, so the helpers here validate the whole batch against locked
rows before touching any quantity.

The *_locked helpers only flush; the calling workflow owns the transaction
(see concurrency.run_in_transaction).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from ..extensions import db
from ..errors import InsufficientStock, NoInventoryRecord, ValidationError
from ..models import BranchInventory, StockMovement
from ..time_utils import utcnow
from .cart_service import get_active_branch, load_active_products
from .concurrency import lock_for_update, run_in_transaction

logger = logging.getLogger(__name__)

MOVEMENT_SALE = "SALE"
MOVEMENT_LAYBY_RESERVE = "LAYBY_RESERVE"
MOVEMENT_LAYBY_RETURN = "LAYBY_RETURN"
MOVEMENT_LOSS = "LOSS"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_STOCK_COUNT = "STOCK_COUNT"


@dataclass(frozen=True)
class StockLine:
    product_id: int
    quantity: int


def _aggregate(lines: Iterable[StockLine]) -> dict[int, int]:
    """Sum quantities per product so duplicate lines are checked together."""
    totals: dict[int, int] = {}
    for line in lines:
        if line.quantity <= 0:
            raise ValidationError(
                "Stock quantity must be greater than zero",
                details={"product_id": line.product_id, "quantity": line.quantity},
            )
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return totals


def _lock_rows(branch_id: int, product_ids: Iterable[int]) -> dict[int, BranchInventory]:
    product_ids = sorted(set(product_ids))
    if not product_ids:
        return {}
    rows = lock_for_update(
        db.session.query(BranchInventory)
        .filter(
            BranchInventory.branch_id == branch_id,
            BranchInventory.product_id.in_(product_ids),
        )
        .order_by(BranchInventory.product_id)
    ).all()
    return {row.product_id: row for row in rows}


def _require_rows(branch_id: int, totals: dict[int, int], rows: dict[int, BranchInventory]) -> None:
    missing = [pid for pid in totals if pid not in rows]
    if missing:
        raise NoInventoryRecord(
            "No inventory record for product at branch",
            details={"branch_id": branch_id, "product_ids": missing},
        )


def _record_movement(
    row: BranchInventory,
    *,
    delta: int,
    movement_type: str,
    reference_type: str | None,
    reference_id: int | None,
    actor_id: int | None,
    occurred_at: datetime,
    reason: str | None = None,
) -> StockMovement:
    movement = StockMovement(
        branch_id=row.branch_id,
        product_id=row.product_id,
        movement_type=movement_type,
        quantity_delta=delta,
        quantity_after=row.quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        reason=reason,
        created_by=actor_id,
        occurred_at=occurred_at,
    )
    db.session.add(movement)
    return movement


def deduct_stock_locked(
    *,
    branch_id: int,
    lines: Iterable[StockLine],
    movement_type: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
    actor_id: int | None = None,
    occurred_at: datetime | None = None,
) -> dict[int, int]:
    """
    Deduct every line or none.

    Raises:
        NoInventoryRecord: a product has never been stocked at the branch
        InsufficientStock: any product would go below zero (all shortfalls
            are listed in details["items"])

    Returns:
        {product_id: quantity_after}
    """
    totals = _aggregate(lines)
    rows = _lock_rows(branch_id, totals)
    _require_rows(branch_id, totals, rows)

    insufficient = []
    for product_id, qty in totals.items():
        available = rows[product_id].quantity
        if available < qty:
            insufficient.append({
                "product_id": product_id,
                "requested_quantity": qty,
                "available": available,
            })
    if insufficient:
        raise InsufficientStock(
            "Insufficient stock",
            details={"branch_id": branch_id, "items": insufficient},
        )

    occurred_at = occurred_at or utcnow()
    after: dict[int, int] = {}
    for product_id, qty in totals.items():
        row = rows[product_id]
        row.quantity -= qty
        after[product_id] = row.quantity
        _record_movement(
            row,
            delta=-qty,
            movement_type=movement_type,
            reference_type=reference_type,
            reference_id=reference_id,
            actor_id=actor_id,
            occurred_at=occurred_at,
        )

    db.session.flush()
    return after


def return_stock_locked(
    *,
    branch_id: int,
    lines: Iterable[StockLine],
    movement_type: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
    actor_id: int | None = None,
    occurred_at: datetime | None = None,
) -> dict[int, int]:
    """Add quantities back; the rows must exist (they were deducted earlier)."""
    totals = _aggregate(lines)
    rows = _lock_rows(branch_id, totals)
    _require_rows(branch_id, totals, rows)

    occurred_at = occurred_at or utcnow()
    after: dict[int, int] = {}
    for product_id, qty in totals.items():
        row = rows[product_id]
        row.quantity += qty
        after[product_id] = row.quantity
        _record_movement(
            row,
            delta=qty,
            movement_type=movement_type,
            reference_type=reference_type,
            reference_id=reference_id,
            actor_id=actor_id,
            occurred_at=occurred_at,
        )

    db.session.flush()
    return after


def reserve_items_locked(*, branch_id: int, items, reference_type: str, reference_id: int,
                         actor_id: int | None = None, occurred_at: datetime | None = None) -> None:
    """
    Deduct stock for reservable line items and flag them as reserved.

    ``items`` are rows with product_id, quantity, stock_reserved and
    stock_reserved_at (LaybyItem). Items already reserved are skipped.
    """
    occurred_at = occurred_at or utcnow()
    pending = [item for item in items if not item.stock_reserved]
    if not pending:
        return

    deduct_stock_locked(
        branch_id=branch_id,
        lines=[StockLine(item.product_id, item.quantity) for item in pending],
        movement_type=MOVEMENT_LAYBY_RESERVE,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_id=actor_id,
        occurred_at=occurred_at,
    )
    for item in pending:
        item.stock_reserved = True
        item.stock_reserved_at = occurred_at
    db.session.flush()


def release_items_locked(*, branch_id: int, items, reference_type: str, reference_id: int,
                         actor_id: int | None = None, occurred_at: datetime | None = None) -> int:
    """
    Return stock for items whose reservation flag is set and clear the flag.

    Returns the number of items released. Items never reserved are ignored.
    """
    reserved = [item for item in items if item.stock_reserved]
    if not reserved:
        return 0

    return_stock_locked(
        branch_id=branch_id,
        lines=[StockLine(item.product_id, item.quantity) for item in reserved],
        movement_type=MOVEMENT_LAYBY_RETURN,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_id=actor_id,
        occurred_at=occurred_at,
    )
    for item in reserved:
        item.stock_reserved = False
    db.session.flush()
    return len(reserved)


# =============================================================================
# MANUAL STOCK
# =============================================================================

def _locked_row(branch_id: int, product_id: int) -> BranchInventory | None:
    return lock_for_update(
        db.session.query(BranchInventory).filter_by(branch_id=branch_id, product_id=product_id)
    ).first()


def adjust_stock(
    *,
    branch_id: int,
    product_id: int,
    quantity_delta: int,
    reason: str,
    actor_id: int | None = None,
) -> BranchInventory:
    """
    Receive (positive delta) or remove (negative delta) stock by hand.

    A missing row is created for a positive delta. The result may not go
    below zero.

    Raises:
        ValidationError: zero delta or blank reason
        NoInventoryRecord: negative delta on a product never stocked here
        InsufficientStock: the delta would take the quantity below zero
    """
    if not quantity_delta:
        raise ValidationError("Adjustment quantity cannot be zero", details={"product_id": product_id})
    if not reason or not reason.strip():
        raise ValidationError("Adjustment reason is required")

    def _op():
        get_active_branch(branch_id)
        load_active_products([product_id])

        row = _locked_row(branch_id, product_id)
        if row is None:
            if quantity_delta < 0:
                raise NoInventoryRecord(
                    "No inventory record for product at branch",
                    details={"branch_id": branch_id, "product_ids": [product_id]},
                )
            row = BranchInventory(branch_id=branch_id, product_id=product_id, quantity=0)
            db.session.add(row)

        if row.quantity + quantity_delta < 0:
            raise InsufficientStock(
                "Insufficient stock",
                details={
                    "branch_id": branch_id,
                    "items": [{
                        "product_id": product_id,
                        "requested_quantity": -quantity_delta,
                        "available": row.quantity,
                    }],
                },
            )

        row.quantity += quantity_delta
        _record_movement(
            row,
            delta=quantity_delta,
            movement_type=MOVEMENT_ADJUSTMENT,
            reference_type=None,
            reference_id=None,
            actor_id=actor_id,
            occurred_at=utcnow(),
            reason=reason.strip(),
        )
        db.session.flush()
        logger.info(
            "Adjusted stock of product %s at branch %s by %s to %s",
            product_id, branch_id, quantity_delta, row.quantity,
        )
        return row

    return run_in_transaction(_op)


def set_stock(
    *,
    branch_id: int,
    product_id: int,
    quantity: int,
    reason: str | None = None,
    actor_id: int | None = None,
) -> BranchInventory:
    """Overwrite the counted quantity; the row is created if missing."""
    if quantity is None or quantity < 0:
        raise ValidationError("Stock quantity cannot be negative", details={"product_id": product_id})

    def _op():
        get_active_branch(branch_id)
        load_active_products([product_id])

        row = _locked_row(branch_id, product_id)
        if row is None:
            row = BranchInventory(branch_id=branch_id, product_id=product_id, quantity=0)
            db.session.add(row)

        delta = quantity - (row.quantity or 0)
        row.quantity = quantity
        if delta:
            _record_movement(
                row,
                delta=delta,
                movement_type=MOVEMENT_STOCK_COUNT,
                reference_type=None,
                reference_id=None,
                actor_id=actor_id,
                occurred_at=utcnow(),
                reason=reason,
            )
        db.session.flush()
        logger.info("Set stock of product %s at branch %s to %s", product_id, branch_id, quantity)
        return row

    return run_in_transaction(_op)


# =============================================================================
# READS
# =============================================================================

def get_inventory_row(branch_id: int, product_id: int) -> BranchInventory:
    row = db.session.query(BranchInventory).filter_by(branch_id=branch_id, product_id=product_id).first()
    if row is None:
        raise NoInventoryRecord(
            "No inventory record for product at branch",
            details={"branch_id": branch_id, "product_ids": [product_id]},
        )
    return row


def get_quantity(branch_id: int, product_id: int) -> int:
    return get_inventory_row(branch_id, product_id).quantity


def list_branch_inventory(branch_id: int) -> list[BranchInventory]:
    return (
        db.session.query(BranchInventory)
        .filter_by(branch_id=branch_id)
        .order_by(BranchInventory.product_id)
        .all()
    )


def list_stock_movements(
    *,
    branch_id: int,
    product_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    query = db.session.query(StockMovement).filter(StockMovement.branch_id == branch_id)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if reference_type is not None:
        query = query.filter(StockMovement.reference_type == reference_type)
    if reference_id is not None:
        query = query.filter(StockMovement.reference_id == reference_id)
    return query.order_by(StockMovement.id.desc()).limit(max(1, min(limit, 1000))).all()
