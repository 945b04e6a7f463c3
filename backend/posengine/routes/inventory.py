# Overview: Flask API routes for branch inventory and loss write-offs; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_tenant, require_actor
from ..errors import EngineError, ValidationError
from ..services import inventory_service, loss_service
from ..services.inventory_service import StockLine
from ..validation import get_int, get_json_object, get_str


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _parse_loss_lines(data: dict) -> list[StockLine]:
    raw = data.get("items")
    if not isinstance(raw, list) or not raw:
        raise ValidationError("items must be a non-empty list")
    lines = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{index}] must be an object")
        lines.append(StockLine(
            product_id=get_int(entry, "product_id"),
            quantity=get_int(entry, "quantity", minimum=1),
        ))
    return lines


@inventory_bp.get("/branches/<int:branch_id>")
@require_tenant
def list_branch_inventory_route(branch_id: int):
    rows = inventory_service.list_branch_inventory(branch_id)
    return jsonify({"inventory": [r.to_dict() for r in rows]}), 200


@inventory_bp.get("/branches/<int:branch_id>/products/<int:product_id>")
@require_tenant
def get_quantity_route(branch_id: int, product_id: int):
    try:
        row = inventory_service.get_inventory_row(branch_id, product_id)
        return jsonify({"inventory": row.to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.post("/branches/<int:branch_id>/adjustments")
@require_tenant
@require_actor
def adjust_stock_route(branch_id: int):
    """Receive or remove stock by a signed delta."""
    try:
        data = get_json_object(request.get_json(silent=True))
        row = inventory_service.adjust_stock(
            branch_id=branch_id,
            product_id=get_int(data, "product_id"),
            quantity_delta=get_int(data, "quantity_delta"),
            reason=get_str(data, "reason", required=True, max_length=255),
            actor_id=g.actor_id,
        )
        return jsonify({"inventory": row.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.put("/branches/<int:branch_id>/products/<int:product_id>")
@require_tenant
@require_actor
def set_stock_route(branch_id: int, product_id: int):
    try:
        data = get_json_object(request.get_json(silent=True))
        row = inventory_service.set_stock(
            branch_id=branch_id,
            product_id=product_id,
            quantity=get_int(data, "quantity", minimum=0),
            reason=get_str(data, "reason", max_length=255),
            actor_id=g.actor_id,
        )
        return jsonify({"inventory": row.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/branches/<int:branch_id>/movements")
@require_tenant
def list_movements_route(branch_id: int):
    movements = inventory_service.list_stock_movements(
        branch_id=branch_id,
        product_id=request.args.get("product_id", type=int),
        reference_type=request.args.get("reference_type"),
        reference_id=request.args.get("reference_id", type=int),
        limit=request.args.get("limit", 200, type=int),
    )
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200


@inventory_bp.post("/losses")
@require_tenant
@require_actor
def create_loss_route():
    try:
        data = get_json_object(request.get_json(silent=True))
        loss = loss_service.create_loss(
            branch_id=get_int(data, "branch_id"),
            items=_parse_loss_lines(data),
            reason=get_str(data, "reason", required=True, max_length=64),
            notes=get_str(data, "notes"),
            actor_id=g.actor_id,
        )
        return jsonify({"loss": loss.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create inventory loss")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/losses")
@require_tenant
def list_losses_route():
    losses = loss_service.list_losses(
        branch_id=request.args.get("branch_id", type=int),
        status=request.args.get("status"),
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"losses": [l.to_dict() for l in losses]}), 200


@inventory_bp.get("/losses/<int:loss_id>")
@require_tenant
def get_loss_route(loss_id: int):
    try:
        return jsonify({"loss": loss_service.get_loss(loss_id).to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.post("/losses/<int:loss_id>/approve")
@require_tenant
@require_actor
def approve_loss_route(loss_id: int):
    """Write the loss off; every line is deducted or none is."""
    try:
        loss = loss_service.approve_loss(loss_id, g.actor_id)
        return jsonify({"loss": loss.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve inventory loss")
        return jsonify({"error": "Internal server error"}), 500
