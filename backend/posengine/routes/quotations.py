# Overview: Flask API routes for quotations; parses input and returns JSON responses.

"""
Quotation API routes.

Reads go through the service so a sent quotation past its expiry is
reported (and stored) as expired.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_tenant, require_actor
from ..errors import EngineError
from ..services import quotation_service
from ..validation import get_int, get_json_object, get_str, is_cleared, parse_cart_items


quotations_bp = Blueprint("quotations", __name__, url_prefix="/api/quotations")


@quotations_bp.post("")
@require_tenant
@require_actor
def create_quotation_route():
    try:
        data = get_json_object(request.get_json(silent=True))
        quotation = quotation_service.create_quotation(
            branch_id=get_int(data, "branch_id"),
            customer_id=get_int(data, "customer_id"),
            items=parse_cart_items(data),
            discount_id=get_int(data, "discount_id", required=False),
            validity_days=get_int(data, "validity_days", required=False, minimum=1),
            notes=get_str(data, "notes"),
            actor_id=g.actor_id,
        )
        return jsonify({"quotation": quotation.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.get("")
@require_tenant
def list_quotations_route():
    try:
        quotations, total = quotation_service.list_quotations(
            branch_id=request.args.get("branch_id", type=int),
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            limit=request.args.get("limit", 100, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({
            "quotations": [q.to_dict(include_items=False) for q in quotations],
            "total": total,
        }), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list quotations")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.get("/<int:quotation_id>")
@require_tenant
def get_quotation_route(quotation_id: int):
    try:
        quotation = quotation_service.get_quotation(quotation_id)
        return jsonify({"quotation": quotation.to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@quotations_bp.put("/<int:quotation_id>")
@require_tenant
@require_actor
def update_quotation_route(quotation_id: int):
    try:
        data = get_json_object(request.get_json(silent=True))
        quotation = quotation_service.update_quotation(
            quotation_id,
            items=parse_cart_items(data, required=False),
            discount_id=get_int(data, "discount_id", required=False),
            clear_discount=is_cleared(data, "discount_id"),
            validity_days=get_int(data, "validity_days", required=False, minimum=1),
            notes=get_str(data, "notes"),
        )
        return jsonify({"quotation": quotation.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.post("/<int:quotation_id>/send")
@require_tenant
@require_actor
def send_quotation_route(quotation_id: int):
    try:
        quotation = quotation_service.send_quotation(quotation_id, g.actor_id)
        return jsonify({"quotation": quotation.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to send quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.post("/<int:quotation_id>/reject")
@require_tenant
@require_actor
def reject_quotation_route(quotation_id: int):
    try:
        data = get_json_object(request.get_json(silent=True))
        quotation = quotation_service.reject_quotation(quotation_id, get_str(data, "reason", max_length=500))
        return jsonify({"quotation": quotation.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject quotation")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.post("/<int:quotation_id>/convert-to-sale")
@require_tenant
@require_actor
def convert_to_sale_route(quotation_id: int):
    """Sent, unexpired quotation -> draft credit sale at the quoted prices."""
    try:
        quotation, sale = quotation_service.convert_to_sale(quotation_id, g.actor_id)
        return jsonify({"quotation": quotation.to_dict(), "sale": sale.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to convert quotation to sale")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.post("/<int:quotation_id>/convert-to-layby")
@require_tenant
@require_actor
def convert_to_layby_route(quotation_id: int):
    try:
        quotation, layby = quotation_service.convert_to_layby(quotation_id, g.actor_id)
        return jsonify({"quotation": quotation.to_dict(), "layby": layby.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to convert quotation to layby")
        return jsonify({"error": "Internal server error"}), 500


@quotations_bp.post("/<int:quotation_id>/recreate")
@require_tenant
@require_actor
def recreate_quotation_route(quotation_id: int):
    """Expired quotation -> new draft quotation at current prices."""
    try:
        data = get_json_object(request.get_json(silent=True))
        quotation = quotation_service.recreate_quotation(
            quotation_id,
            g.actor_id,
            validity_days=get_int(data, "validity_days", required=False, minimum=1),
        )
        return jsonify({"quotation": quotation.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to recreate quotation")
        return jsonify({"error": "Internal server error"}), 500
