# Overview: Flask API routes for till shifts and cash movements; parses input and returns JSON responses.

# backend/posengine/routes/shifts.py
"""
Till shift API routes.

Closing a shift also rolls it into the branch day-end, so the close
response carries both records.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_tenant, require_actor
from ..errors import EngineError
from ..services import shift_service
from ..validation import get_amount, get_int, get_json_object, get_str


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


@shifts_bp.post("/open")
@require_tenant
@require_actor
def open_shift_route():
    try:
        data = get_json_object(request.get_json(silent=True))
        shift = shift_service.open_shift(
            till_id=get_int(data, "till_id"),
            cashier_id=get_int(data, "cashier_id", required=False) or g.actor_id,
            opening_balance_cents=get_amount(data, "opening_balance_cents", required=False) or 0,
            notes=get_str(data, "notes"),
        )
        return jsonify({"shift": shift.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to open shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/current")
@require_tenant
@require_actor
def current_shift_route():
    """Open shift of the calling cashier, or null."""
    shift = shift_service.get_current_shift(g.actor_id)
    return jsonify({"shift": shift.to_dict() if shift else None}), 200


@shifts_bp.get("")
@require_tenant
def list_shifts_route():
    shifts = shift_service.list_shifts(
        branch_id=request.args.get("branch_id", type=int),
        till_id=request.args.get("till_id", type=int),
        cashier_id=request.args.get("cashier_id", type=int),
        status=request.args.get("status"),
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200


@shifts_bp.get("/<int:shift_id>")
@require_tenant
def get_shift_route(shift_id: int):
    try:
        return jsonify({"shift": shift_service.get_shift(shift_id).to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@shifts_bp.get("/<int:shift_id>/summary")
@require_tenant
def shift_summary_route(shift_id: int):
    try:
        return jsonify(shift_service.get_shift_summary(shift_id)), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@shifts_bp.post("/<int:shift_id>/movements")
@require_tenant
@require_actor
def add_cash_movement_route(shift_id: int):
    """Record a pending paid-in, paid-out, cash drop or pickup."""
    try:
        data = get_json_object(request.get_json(silent=True))
        movement = shift_service.add_cash_movement(
            shift_id=shift_id,
            movement_type=get_str(data, "movement_type", required=True),
            amount_cents=get_amount(data, "amount_cents", minimum=1),
            currency_id=get_int(data, "currency_id"),
            reason=get_str(data, "reason", required=True, max_length=255),
            actor_id=g.actor_id,
        )
        return jsonify({"movement": movement.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add cash movement")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/<int:shift_id>/movements")
@require_tenant
def list_movements_route(shift_id: int):
    try:
        shift_service.get_shift(shift_id)
        if request.args.get("pending") in ("1", "true"):
            movements = shift_service.list_pending_movements(shift_id)
        else:
            movements = shift_service.list_movements(shift_id)
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@shifts_bp.post("/movements/<int:movement_id>/approve")
@require_tenant
@require_actor
def approve_cash_movement_route(movement_id: int):
    try:
        movement = shift_service.approve_cash_movement(movement_id, g.actor_id)
        return jsonify({"movement": movement.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve cash movement")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/<int:shift_id>/close")
@require_tenant
@require_actor
def close_shift_route(shift_id: int):
    try:
        data = get_json_object(request.get_json(silent=True))
        shift, day_end = shift_service.close_shift(
            shift_id,
            closing_balance_cents=get_amount(data, "closing_balance_cents"),
            actor_id=g.actor_id,
            notes=get_str(data, "notes"),
        )
        return jsonify({"shift": shift.to_dict(), "day_end": day_end.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to close shift")
        return jsonify({"error": "Internal server error"}), 500
