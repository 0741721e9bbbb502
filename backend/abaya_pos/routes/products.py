# Overview: Flask API routes for products and stock; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import inventory_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_products_route():
    """
    Query params: category_id, search, include_inactive (true/false)
    """
    try:
        products = inventory_service.list_products(
            category_id=request.args.get("category_id", type=int),
            search=request.args.get("search"),
            active_only=request.args.get("include_inactive", "false").lower() != "true",
        )
        return jsonify({"products": [p.to_dict() for p in products]}), 200
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_INVENTORY")
def low_stock_route():
    try:
        return jsonify({
            "low_stock": [p.to_dict() for p in inventory_service.get_low_stock_products()],
            "out_of_stock": [p.to_dict() for p in inventory_service.get_out_of_stock_products()],
        }), 200
    except Exception:
        current_app.logger.exception("Failed to list low stock products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def get_product_route(product_id: int):
    product = inventory_service.get_product(product_id)
    if not product:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"product": product.to_dict(include_branch_stock=True)}), 200


@products_bp.get("/<int:product_id>/movements")
@require_auth
@require_permission("VIEW_INVENTORY")
def product_movements_route(product_id: int):
    product = inventory_service.get_product(product_id)
    if not product:
        return jsonify({"error": "Product not found"}), 404

    limit = request.args.get("limit", default=100, type=int)
    movements = inventory_service.get_stock_movements(product_id, limit=max(1, min(limit, 500)))
    return jsonify({
        "product": product.to_dict(),
        "movements": [m.to_dict() for m in movements],
    }), 200
