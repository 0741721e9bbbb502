# Overview: Flask API routes for discounts and coupons; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import discount_service
from ..services.discount_service import DiscountError
from ..validation import ValidationError


discounts_bp = Blueprint("discounts", __name__, url_prefix="/api/discounts")


@discounts_bp.get("")
@require_auth
@require_permission("CREATE_SALE")
def list_discounts_route():
    """Query params: active_only (true/false), branch_id."""
    discounts = discount_service.list_discounts(
        active_only=request.args.get("active_only", "false").lower() == "true",
        branch_id=request.args.get("branch_id", type=int),
    )
    return jsonify({"discounts": [d.to_dict() for d in discounts]}), 200


@discounts_bp.post("")
@require_auth
@require_permission("MANAGE_DISCOUNTS")
def create_discount_route():
    """
    Request body:
    {
        "name": "Eid Sale",
        "code": "EID10",                 (optional; makes it a coupon)
        "discount_type": "percentage",   (percentage | fixed_amount)
        "value": 1000,                   (bps for percentage, cents for fixed_amount)
        "scope": "all_products",         (all_products | category | specific_products)
        "category_ids": [], "product_ids": [], "branch_ids": [],
        "start_date": "...", "end_date": "...",
        "usage_limit": 100, "min_purchase_cents": 200000, "max_discount_cents": 50000
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        discount = discount_service.create_discount(data, user_id=g.current_user.id)
        return jsonify({"discount": discount.to_dict()}), 201
    except (DiscountError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create discount")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.patch("/<int:discount_id>")
@require_auth
@require_permission("MANAGE_DISCOUNTS")
def update_discount_route(discount_id: int):
    try:
        if discount_service.get_discount(discount_id) is None:
            return jsonify({"error": "Discount not found"}), 404
        data = request.get_json(silent=True) or {}
        discount = discount_service.update_discount(discount_id, data)
        return jsonify({"discount": discount.to_dict()}), 200
    except (DiscountError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update discount")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.delete("/<int:discount_id>")
@require_auth
@require_permission("MANAGE_DISCOUNTS")
def remove_discount_route(discount_id: int):
    """Deactivates the discount; sales that used it keep their reference."""
    if discount_service.get_discount(discount_id) is None:
        return jsonify({"error": "Discount not found"}), 404
    discount = discount_service.remove_discount(discount_id)
    return jsonify({"discount": discount.to_dict()}), 200


@discounts_bp.post("/validate")
@require_auth
@require_permission("CREATE_SALE")
def validate_discount_route():
    """
    Check a coupon code (or discount id) against a basket before checkout.

    Request body: {"code": "EID10", "branch_id": 1, "items": [{"product_id": 3, "quantity": 1}]}

    Returns 200 with {"valid": true, ...} or {"valid": false, "error": reason}.
    """
    try:
        data = request.get_json(silent=True) or {}
        result = discount_service.preview_discount(
            branch_id=data.get("branch_id") or g.branch_id,
            items=data.get("items") or [],
            code=data.get("code"),
            discount_id=data.get("discount_id"),
        )
        return jsonify(result), 200
    except (DiscountError, ValidationError) as e:
        return jsonify({"valid": False, "error": str(e)}), 200
    except Exception:
        current_app.logger.exception("Failed to validate discount")
        return jsonify({"error": "Internal server error"}), 500
