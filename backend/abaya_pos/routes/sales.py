# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import sales_service
from ..services.sales_service import SaleError
from ..validation import ValidationError, optional_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
@require_permission("CREATE_SALE")
def create_sale_route():
    """
    Ring up a completed sale.

    Request body:
    {
        "branch_id": 1,                (optional, defaults to the session branch)
        "items": [{"product_id": 3, "quantity": 2}],
        "payment_method": "cash",
        "paid_amount_cents": 500000,   (optional, defaults to total)
        "customer_id": 7,              (optional)
        "discount_id": 2 | "coupon_code": "EID10",  (optional)
        "notes": "..."                 (optional)
    }

    Returns:
        201: sale created
        400: invalid input, insufficient stock, discount not usable
    """
    try:
        data = request.get_json(silent=True) or {}
        branch_id = data.get("branch_id") or g.branch_id
        if not branch_id:
            return jsonify({"error": "branch_id is required"}), 400

        sale = sales_service.create_sale(
            branch_id=branch_id,
            user_id=g.current_user.id,
            items=data.get("items"),
            payment_method=data.get("payment_method"),
            paid_amount_cents=data.get("paid_amount_cents"),
            customer_id=data.get("customer_id"),
            discount_id=data.get("discount_id"),
            coupon_code=data.get("coupon_code"),
            notes=data.get("notes"),
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except SaleError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_sales_route():
    """Query params: branch_id, status, customer_id, start, end, limit."""
    try:
        sales = sales_service.list_sales(
            branch_id=request.args.get("branch_id", type=int),
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            start=optional_datetime(request.args.get("start"), "start"),
            end=optional_datetime(request.args.get("end"), "end"),
            limit=request.args.get("limit", default=100, type=int),
        )
        return jsonify({"sales": [s.to_dict() for s in sales]}), 200
    except (SaleError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_route(sale_id: int):
    sale = sales_service.get_sale(sale_id)
    if not sale:
        return jsonify({"error": "Sale not found"}), 404
    return jsonify({"sale": sale.to_dict()}), 200
