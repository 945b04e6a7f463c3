# Overview: Flask API routes for laybys; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_tenant, require_actor
from ..errors import EngineError
from ..services import layby_service
from ..validation import get_int, get_json_object, get_str, is_cleared, parse_cart_items, parse_payment_request


laybys_bp = Blueprint("laybys", __name__, url_prefix="/api/laybys")


@laybys_bp.post("")
@require_tenant
@require_actor
def create_layby_route():
    try:
        data = get_json_object(request.get_json(silent=True))
        layby = layby_service.create_layby(
            branch_id=get_int(data, "branch_id"),
            customer_id=get_int(data, "customer_id"),
            items=parse_cart_items(data),
            discount_id=get_int(data, "discount_id", required=False),
            notes=get_str(data, "notes"),
            actor_id=g.actor_id,
        )
        return jsonify({"layby": layby.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create layby")
        return jsonify({"error": "Internal server error"}), 500


@laybys_bp.get("")
@require_tenant
def list_laybys_route():
    laybys, total = layby_service.list_laybys(
        branch_id=request.args.get("branch_id", type=int),
        status=request.args.get("status"),
        customer_id=request.args.get("customer_id", type=int),
        limit=request.args.get("limit", 100, type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return jsonify({"laybys": [l.to_dict(include_items=False) for l in laybys], "total": total}), 200


@laybys_bp.get("/active")
@require_tenant
def list_active_laybys_route():
    laybys = layby_service.list_active_laybys(request.args.get("branch_id", type=int))
    return jsonify({"laybys": [l.to_dict(include_items=False) for l in laybys]}), 200


@laybys_bp.get("/<int:layby_id>")
@require_tenant
def get_layby_route(layby_id: int):
    try:
        return jsonify({"layby": layby_service.get_layby(layby_id).to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@laybys_bp.put("/<int:layby_id>")
@require_tenant
@require_actor
def update_layby_route(layby_id: int):
    try:
        data = get_json_object(request.get_json(silent=True))
        layby = layby_service.update_layby(
            layby_id,
            items=parse_cart_items(data, required=False),
            discount_id=get_int(data, "discount_id", required=False),
            clear_discount=is_cleared(data, "discount_id"),
            notes=get_str(data, "notes"),
            actor_id=g.actor_id,
        )
        return jsonify({"layby": layby.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update layby")
        return jsonify({"error": "Internal server error"}), 500


@laybys_bp.post("/<int:layby_id>/activate")
@require_tenant
@require_actor
def activate_layby_route(layby_id: int):
    """Reserve stock and move the layby to active."""
    try:
        layby = layby_service.activate_layby(layby_id, g.actor_id)
        return jsonify({"layby": layby.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to activate layby")
        return jsonify({"error": "Internal server error"}), 500


@laybys_bp.post("/<int:layby_id>/payments")
@require_tenant
@require_actor
def add_layby_payment_route(layby_id: int):
    try:
        data = get_json_object(request.get_json(silent=True))
        layby, payment = layby_service.add_layby_payment(layby_id, parse_payment_request(data), g.actor_id)
        return jsonify({"layby": layby.to_dict(), "payment": payment.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add layby payment")
        return jsonify({"error": "Internal server error"}), 500


@laybys_bp.get("/<int:layby_id>/payments")
@require_tenant
def list_layby_payments_route(layby_id: int):
    try:
        payments = layby_service.list_layby_payments(layby_id)
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@laybys_bp.post("/<int:layby_id>/collect")
@require_tenant
@require_actor
def collect_layby_route(layby_id: int):
    try:
        layby = layby_service.collect_layby(layby_id, g.actor_id)
        return jsonify({"layby": layby.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to collect layby")
        return jsonify({"error": "Internal server error"}), 500


@laybys_bp.post("/<int:layby_id>/cancel")
@require_tenant
@require_actor
def cancel_layby_route(layby_id: int):
    """
    Cancel a layby. The response carries the refund due to the customer;
    paying it out is handled outside this service.
    """
    try:
        data = get_json_object(request.get_json(silent=True))
        result = layby_service.cancel_layby(
            layby_id,
            actor_id=g.actor_id,
            reason=get_str(data, "reason", max_length=255),
        )
        return jsonify({
            "layby": result.layby.to_dict(),
            "refund_amount_cents": result.refund_cents,
            "items_returned": result.items_returned,
        }), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel layby")
        return jsonify({"error": "Internal server error"}), 500
