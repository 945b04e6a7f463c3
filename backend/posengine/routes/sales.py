# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/posengine/routes/sales.py
"""Sale workflow API routes (credit and till sales)."""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_tenant, require_actor
from ..errors import EngineError
from ..services import sales_service
from ..validation import (
    get_datetime,
    get_int,
    get_json_object,
    is_cleared,
    get_str,
    parse_cart_items,
    parse_payment_request,
    parse_payment_requests,
)
from ..time_utils import parse_iso_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/credit")
@require_tenant
@require_actor
def create_credit_sale_route():
    """Create a draft credit sale (invoice)."""
    try:
        data = get_json_object(request.get_json(silent=True))
        sale = sales_service.create_credit_sale(
            branch_id=get_int(data, "branch_id"),
            customer_id=get_int(data, "customer_id"),
            items=parse_cart_items(data),
            discount_id=get_int(data, "discount_id", required=False),
            notes=get_str(data, "notes"),
            sale_date=get_datetime(data, "sale_date"),
            actor_id=g.actor_id,
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create credit sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/till")
@require_tenant
@require_actor
def create_till_sale_route():
    """
    Counter sale: create, confirm and pay in full as one operation.

    Nothing is persisted unless every step succeeds.
    """
    try:
        data = get_json_object(request.get_json(silent=True))
        sale, payments = sales_service.create_till_sale(
            branch_id=get_int(data, "branch_id"),
            customer_id=get_int(data, "customer_id", required=False),
            items=parse_cart_items(data),
            payments=parse_payment_requests(data),
            discount_id=get_int(data, "discount_id", required=False),
            notes=get_str(data, "notes"),
            actor_id=g.actor_id,
        )
        return jsonify({
            "sale": sale.to_dict(),
            "payments": [p.to_dict() for p in payments],
        }), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create till sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_tenant
def list_sales_route():
    try:
        sales, total = sales_service.list_sales(
            branch_id=request.args.get("branch_id", type=int),
            status=request.args.get("status"),
            sale_type=request.args.get("sale_type"),
            customer_id=request.args.get("customer_id", type=int),
            from_date=parse_iso_datetime(request.args.get("from")),
            to_date=parse_iso_datetime(request.args.get("to")),
            limit=request.args.get("limit", 100, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"sales": [s.to_dict(include_items=False) for s in sales], "total": total}), 200

    except ValueError:
        return jsonify({"error": "from/to must be ISO-8601 datetimes"}), 400
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/unpaid")
@require_tenant
def list_unpaid_sales_route():
    sales = sales_service.list_unpaid_sales(request.args.get("branch_id", type=int))
    return jsonify({"sales": [s.to_dict(include_items=False) for s in sales]}), 200


@sales_bp.get("/<int:sale_id>")
@require_tenant
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.put("/<int:sale_id>")
@require_tenant
@require_actor
def update_sale_route(sale_id: int):
    """Replace items/discount/customer of a draft sale."""
    try:
        data = get_json_object(request.get_json(silent=True))
        sale = sales_service.update_sale(
            sale_id,
            items=parse_cart_items(data, required=False),
            discount_id=get_int(data, "discount_id", required=False),
            clear_discount=is_cleared(data, "discount_id"),
            customer_id=get_int(data, "customer_id", required=False),
            notes=get_str(data, "notes"),
            actor_id=g.actor_id,
        )
        return jsonify({"sale": sale.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/confirm")
@require_tenant
@require_actor
def confirm_sale_route(sale_id: int):
    """Confirm a draft sale - deducts stock for every line."""
    try:
        sale = sales_service.confirm_sale(sale_id, g.actor_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to confirm sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/payments")
@require_tenant
@require_actor
def add_sale_payment_route(sale_id: int):
    try:
        data = get_json_object(request.get_json(silent=True))
        sale, payment = sales_service.add_sale_payment(sale_id, parse_payment_request(data), g.actor_id)
        return jsonify({"sale": sale.to_dict(), "payment": payment.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add sale payment")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>/payments")
@require_tenant
def list_sale_payments_route(sale_id: int):
    try:
        payments = sales_service.list_sale_payments(sale_id)
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.post("/<int:sale_id>/cancel")
@require_tenant
@require_actor
def cancel_sale_route(sale_id: int):
    try:
        sale = sales_service.cancel_sale(sale_id, g.actor_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500
