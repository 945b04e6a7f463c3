# Overview: Flask API routes for day-end reconciliation; parses input and returns JSON responses.

"""
Day-end API routes.

Day-ends are created by closing shifts; these endpoints read them and
drive the review / approve / reopen lifecycle.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_tenant, require_actor
from ..errors import EngineError
from ..services import day_end_service
from ..validation import get_date, get_json_object, parse_reconciliation


day_ends_bp = Blueprint("day_ends", __name__, url_prefix="/api/day-ends")


@day_ends_bp.get("")
@require_tenant
def list_day_ends_route():
    try:
        day_ends = day_end_service.list_day_ends(
            branch_id=request.args.get("branch_id", type=int),
            status=request.args.get("status"),
            start_date=get_date(request.args.get("start_date"), "start_date"),
            end_date=get_date(request.args.get("end_date"), "end_date"),
            limit=request.args.get("limit", 30, type=int),
        )
        return jsonify({"day_ends": [d.to_dict() for d in day_ends]}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@day_ends_bp.get("/lookup")
@require_tenant
def find_day_end_route():
    """Day-end for ?branch_id=&date=, or 404."""
    try:
        branch_id = request.args.get("branch_id", type=int)
        business_date = get_date(request.args.get("date"), "date")
        if branch_id is None or business_date is None:
            return jsonify({"error": "branch_id and date required"}), 400
        day_end = day_end_service.find_day_end(branch_id, business_date)
        if day_end is None:
            return jsonify({"error": "Day-end not found", "code": "NOT_FOUND"}), 404
        return jsonify({"day_end": day_end.to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@day_ends_bp.get("/<int:day_end_id>")
@require_tenant
def get_day_end_route(day_end_id: int):
    try:
        return jsonify({"day_end": day_end_service.get_day_end(day_end_id).to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@day_ends_bp.get("/<int:day_end_id>/summary")
@require_tenant
def day_end_summary_route(day_end_id: int):
    try:
        return jsonify(day_end_service.get_day_end_summary(day_end_id)), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@day_ends_bp.put("/<int:day_end_id>/reconciliation")
@require_tenant
@require_actor
def update_reconciliation_route(day_end_id: int):
    """
    Record counted amounts per payment method and currency.

    Body: {"payments": [{"payment_method_id", "currency_id", "actual_amount_cents"}, ...]}
    """
    try:
        data = get_json_object(request.get_json(silent=True))
        day_end = day_end_service.update_payment_reconciliation(day_end_id, parse_reconciliation(data))
        return jsonify({"day_end": day_end.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update day-end reconciliation")
        return jsonify({"error": "Internal server error"}), 500


def _transition(action, day_end_id: int, label: str):
    try:
        day_end = action(day_end_id, g.actor_id)
        return jsonify({"day_end": day_end.to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to %s day-end", label)
        return jsonify({"error": "Internal server error"}), 500


@day_ends_bp.post("/<int:day_end_id>/review")
@require_tenant
@require_actor
def review_day_end_route(day_end_id: int):
    return _transition(day_end_service.review_day_end, day_end_id, "review")


@day_ends_bp.post("/<int:day_end_id>/approve")
@require_tenant
@require_actor
def approve_day_end_route(day_end_id: int):
    return _transition(day_end_service.approve_day_end, day_end_id, "approve")


@day_ends_bp.post("/<int:day_end_id>/reopen")
@require_tenant
@require_actor
def reopen_day_end_route(day_end_id: int):
    return _transition(day_end_service.reopen_day_end, day_end_id, "reopen")
