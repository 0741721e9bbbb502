# Overview: Flask API routes for customer loyalty; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import loyalty_service
from ..services.loyalty_service import LoyaltyError
from ..validation import ValidationError, coerce_int


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("/<int:customer_id>/loyalty")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def customer_loyalty_route(customer_id: int):
    try:
        return jsonify(loyalty_service.get_customer_loyalty(customer_id)), 200
    except LoyaltyError as e:
        return jsonify({"error": str(e)}), 404


@customers_bp.get("/<int:customer_id>/points")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def points_history_route(customer_id: int):
    limit = request.args.get("limit", default=100, type=int)
    history = loyalty_service.get_points_history(customer_id, limit=max(1, min(limit, 500)))
    return jsonify({"transactions": [t.to_dict() for t in history]}), 200


@customers_bp.post("/<int:customer_id>/points/adjust")
@require_auth
@require_permission("ADJUST_POINTS")
def adjust_points_route(customer_id: int):
    """
    Request body: {"points": -50, "reason": "Goodwill correction"}
    """
    try:
        data = request.get_json(silent=True) or {}
        txn = loyalty_service.adjust_points(
            customer_id=customer_id,
            points=coerce_int(data.get("points"), "points"),
            reason=data.get("reason") or "",
            user_id=g.current_user.id,
        )
        return jsonify({
            "transaction": txn.to_dict(),
            "loyalty": loyalty_service.get_customer_loyalty(customer_id),
        }), 200
    except (LoyaltyError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to adjust loyalty points")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/<int:customer_id>/points/redeem")
@require_auth
@require_permission("REDEEM_POINTS")
def redeem_points_route(customer_id: int):
    """
    Request body: {"points": 100, "description": "Redeemed at checkout"}

    Returns:
        200: transaction and updated loyalty summary
        400: insufficient balance or bad input
    """
    try:
        data = request.get_json(silent=True) or {}
        txn = loyalty_service.redeem_points(
            customer_id=customer_id,
            points=coerce_int(data.get("points"), "points"),
            user_id=g.current_user.id,
            description=data.get("description") or "Points redeemed",
        )
        return jsonify({
            "transaction": txn.to_dict(),
            "loyalty": loyalty_service.get_customer_loyalty(customer_id),
        }), 200
    except (LoyaltyError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to redeem loyalty points")
        return jsonify({"error": "Internal server error"}), 500
