"""
Inventory ledger and loss write-off tests.
"""

import pytest

from posengine.errors import InsufficientStock, InvalidStateTransition, NoInventoryRecord, ValidationError
from posengine.models import StockMovement
from posengine.services import inventory_service, loss_service
from posengine.services.inventory_service import MOVEMENT_ADJUSTMENT, MOVEMENT_SALE, MOVEMENT_STOCK_COUNT, StockLine

from conftest import stock_of


def test_deduct_records_movements(tenant_a, branch, make_product):
    product = make_product(stock=10)

    after = inventory_service.deduct_stock_locked(
        branch_id=branch.id,
        lines=[StockLine(product.id, 4)],
        movement_type=MOVEMENT_SALE,
        reference_type="sale",
        reference_id=1,
    )
    tenant_a.commit()

    assert after == {product.id: 6}
    movement = tenant_a.query(StockMovement).filter_by(product_id=product.id).one()
    assert movement.quantity_delta == -4
    assert movement.quantity_after == 6


def test_duplicate_lines_checked_together(tenant_a, branch, make_product):
    """Two lines of 3 against stock 5 must fail even though each fits alone."""
    product = make_product(stock=5)

    with pytest.raises(InsufficientStock) as exc:
        inventory_service.deduct_stock_locked(
            branch_id=branch.id,
            lines=[StockLine(product.id, 3), StockLine(product.id, 3)],
            movement_type=MOVEMENT_SALE,
        )
    tenant_a.rollback()

    assert exc.value.details["items"][0]["requested_quantity"] == 6
    assert stock_of(product, branch) == 5


def test_missing_row_differs_from_zero_stock(tenant_a, branch, make_product):
    unstocked = make_product(stock=None)
    empty = make_product(stock=0)

    with pytest.raises(NoInventoryRecord) as exc:
        inventory_service.deduct_stock_locked(
            branch_id=branch.id, lines=[StockLine(unstocked.id, 1)], movement_type=MOVEMENT_SALE,
        )
    tenant_a.rollback()
    assert exc.value.details["product_ids"] == [unstocked.id]

    with pytest.raises(InsufficientStock):
        inventory_service.deduct_stock_locked(
            branch_id=branch.id, lines=[StockLine(empty.id, 1)], movement_type=MOVEMENT_SALE,
        )
    tenant_a.rollback()

    with pytest.raises(NoInventoryRecord):
        inventory_service.get_quantity(branch.id, unstocked.id)
    assert inventory_service.get_quantity(branch.id, empty.id) == 0


def test_one_short_line_blocks_the_batch(tenant_a, branch, make_product):
    plenty = make_product(stock=10)
    short = make_product(stock=1)

    with pytest.raises(InsufficientStock) as exc:
        inventory_service.deduct_stock_locked(
            branch_id=branch.id,
            lines=[StockLine(plenty.id, 2), StockLine(short.id, 2)],
            movement_type=MOVEMENT_SALE,
        )
    tenant_a.rollback()

    assert [i["product_id"] for i in exc.value.details["items"]] == [short.id]
    assert stock_of(plenty, branch) == 10
    assert stock_of(short, branch) == 1


def test_non_positive_quantity_rejected(tenant_a, branch, make_product):
    product = make_product(stock=10)
    with pytest.raises(ValidationError):
        inventory_service.deduct_stock_locked(
            branch_id=branch.id, lines=[StockLine(product.id, 0)], movement_type=MOVEMENT_SALE,
        )
    tenant_a.rollback()


# =============================================================================
# MANUAL STOCK
# =============================================================================

def test_adjust_creates_row_for_first_delivery(tenant_a, branch, make_product):
    product = make_product(stock=None)

    row = inventory_service.adjust_stock(
        branch_id=branch.id, product_id=product.id, quantity_delta=12, reason="Opening delivery", actor_id=7,
    )

    assert row.quantity == 12
    assert stock_of(product, branch) == 12
    movement = tenant_a.query(StockMovement).filter_by(product_id=product.id).one()
    assert movement.movement_type == MOVEMENT_ADJUSTMENT
    assert movement.quantity_delta == 12
    assert movement.reason == "Opening delivery"
    assert movement.created_by == 7


def test_adjust_cannot_go_negative(tenant_a, branch, make_product):
    product = make_product(stock=4)
    unstocked = make_product(stock=None)

    with pytest.raises(InsufficientStock) as exc:
        inventory_service.adjust_stock(branch_id=branch.id, product_id=product.id, quantity_delta=-5, reason="Damaged")
    assert exc.value.details["items"][0]["available"] == 4
    assert stock_of(product, branch) == 4

    with pytest.raises(NoInventoryRecord):
        inventory_service.adjust_stock(branch_id=branch.id, product_id=unstocked.id, quantity_delta=-1, reason="Damaged")

    row = inventory_service.adjust_stock(branch_id=branch.id, product_id=product.id, quantity_delta=-4, reason="Damaged")
    assert row.quantity == 0


def test_adjust_validates_input(tenant_a, branch, make_product):
    product = make_product(stock=4)

    with pytest.raises(ValidationError):
        inventory_service.adjust_stock(branch_id=branch.id, product_id=product.id, quantity_delta=0, reason="x")
    with pytest.raises(ValidationError):
        inventory_service.adjust_stock(branch_id=branch.id, product_id=product.id, quantity_delta=1, reason="  ")
    assert tenant_a.query(StockMovement).count() == 0


def test_set_stock_records_difference(tenant_a, branch, make_product):
    counted = make_product(stock=10)
    unstocked = make_product(stock=None)

    inventory_service.set_stock(branch_id=branch.id, product_id=counted.id, quantity=7, reason="Cycle count")
    inventory_service.set_stock(branch_id=branch.id, product_id=counted.id, quantity=7)
    created = inventory_service.set_stock(branch_id=branch.id, product_id=unstocked.id, quantity=3)

    assert stock_of(counted, branch) == 7
    assert created.quantity == 3
    deltas = [
        (m.product_id, m.movement_type, m.quantity_delta)
        for m in tenant_a.query(StockMovement).order_by(StockMovement.id)
    ]
    assert deltas == [
        (counted.id, MOVEMENT_STOCK_COUNT, -3),
        (unstocked.id, MOVEMENT_STOCK_COUNT, 3),
    ]

    with pytest.raises(ValidationError):
        inventory_service.set_stock(branch_id=branch.id, product_id=counted.id, quantity=-1)


# =============================================================================
# LOSSES
# =============================================================================

def test_loss_snapshots_cost_and_deducts_on_approval(tenant_a, branch, make_product):
    product = make_product(stock=10, cost_cents=250)

    loss = loss_service.create_loss(
        branch_id=branch.id,
        items=[StockLine(product.id, 3)],
        reason="damaged",
        actor_id=7,
    )

    assert loss.loss_number.startswith("LOSS")
    assert loss.status == loss_service.LOSS_DRAFT
    assert loss.total_cost_cents == 750
    # Drafts do not touch stock
    assert stock_of(product, branch) == 10

    product.cost_cents = 999
    tenant_a.commit()

    approved = loss_service.approve_loss(loss.id, actor_id=8)

    assert approved.status == loss_service.LOSS_APPROVED
    assert approved.approved_by == 8
    assert approved.total_cost_cents == 750
    assert stock_of(product, branch) == 7


def test_loss_approval_is_all_or_nothing(tenant_a, branch, make_product):
    plenty = make_product(stock=10)
    short = make_product(stock=1)

    loss = loss_service.create_loss(
        branch_id=branch.id,
        items=[StockLine(plenty.id, 1), StockLine(short.id, 5)],
        reason="theft",
    )

    with pytest.raises(InsufficientStock):
        loss_service.approve_loss(loss.id)

    assert loss_service.get_loss(loss.id).status == loss_service.LOSS_DRAFT
    assert stock_of(plenty, branch) == 10


def test_loss_cannot_be_approved_twice(tenant_a, branch, make_product):
    product = make_product(stock=10)
    loss = loss_service.create_loss(branch_id=branch.id, items=[StockLine(product.id, 1)], reason="expired")
    loss_service.approve_loss(loss.id)

    with pytest.raises(InvalidStateTransition):
        loss_service.approve_loss(loss.id)
    assert stock_of(product, branch) == 9


def test_loss_reason_validated(tenant_a, branch, make_product):
    product = make_product(stock=10)
    with pytest.raises(ValidationError):
        loss_service.create_loss(branch_id=branch.id, items=[StockLine(product.id, 1)], reason="lost at sea")
