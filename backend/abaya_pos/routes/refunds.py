# Overview: Flask API routes for refund operations; parses input and returns JSON responses.

"""
Refund API Routes

WHY: Counter staff take refund requests; managers approve, reject and
complete them; every step lands in the refund audit trail.

SECURITY:
- PROCESS_REFUND: create, view, process (pay out) refunds
- APPROVE_REFUND: approve / reject
- COMPLETE_REFUND: complete (restock, undo sale, reverse points)
- MANAGE_REFUND_POLICY: edit branch policy
- VIEW_REPORTS: statistics
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import refund_service
from ..services.refund_service import POLICY_DEFAULTS, RefundError
from ..validation import (
    NotFoundError,
    ValidationError,
    coerce_bool,
    coerce_int,
    optional_datetime,
    optional_int,
)


refunds_bp = Blueprint("refunds", __name__, url_prefix="/api/refunds")


def _error_response(e: Exception):
    if isinstance(e, NotFoundError):
        return jsonify({"error": str(e)}), 404
    return jsonify({"error": str(e)}), 400


# =============================================================================
# REFUND CREATION
# =============================================================================

@refunds_bp.post("")
@require_auth
@require_permission("PROCESS_REFUND")
def create_refund_route():
    """
    Create a refund request.

    Request body:
    {
        "sale_id": 12,
        "items": [{"sale_item_id": 30, "quantity": 1, "condition": "new", "reason": "defective"}],
        "refund_method": "cash",
        "refund_reason": "defective",
        "refund_notes": "...",            (optional)
        "refund_amount_cents": 150000,    (optional, at most the computed maximum)
        "restock_required": true,         (optional, default from policy)
        "photo_evidence": ["uploads/1.jpg"]  (optional)
    }

    Returns:
        201: refund created
        400: policy or limit violation
        404: sale not found
    """
    try:
        data = request.get_json(silent=True) or {}
        restock = data.get("restock_required")

        refund = refund_service.create_refund(
            sale_id=coerce_int(data.get("sale_id"), "sale_id", minimum=1),
            user_id=g.current_user.id,
            items=data.get("items"),
            refund_method=data.get("refund_method"),
            refund_reason=data.get("refund_reason"),
            refund_notes=data.get("refund_notes"),
            refund_amount_cents=optional_int(data.get("refund_amount_cents"), "refund_amount_cents", minimum=0),
            restock_required=None if restock is None else coerce_bool(restock, "restock_required"),
            photo_evidence=data.get("photo_evidence"),
        )
        return jsonify({
            "refund": refund.to_dict(),
            "refund_id": refund.id,
            "refund_number": refund.refund_number,
            "approval_status": refund.approval_status,
        }), 201

    except (RefundError, NotFoundError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create refund")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# REFUND WORKFLOW
# =============================================================================

@refunds_bp.post("/<int:refund_id>/approve")
@require_auth
@require_permission("APPROVE_REFUND")
def approve_refund_route(refund_id: int):
    """Request body (optional): {"notes": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        refund = refund_service.approve_refund(refund_id, g.current_user.id, notes=data.get("notes"))
        return jsonify({"success": True, "refund": refund.to_dict()}), 200
    except (RefundError, NotFoundError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to approve refund")
        return jsonify({"error": "Internal server error"}), 500


@refunds_bp.post("/<int:refund_id>/reject")
@require_auth
@require_permission("APPROVE_REFUND")
def reject_refund_route(refund_id: int):
    """Request body: {"reason": "Item worn"}"""
    try:
        data = request.get_json(silent=True) or {}
        refund = refund_service.reject_refund(refund_id, g.current_user.id, reason=data.get("reason"))
        return jsonify({"success": True, "refund": refund.to_dict()}), 200
    except (RefundError, NotFoundError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reject refund")
        return jsonify({"error": "Internal server error"}), 500


@refunds_bp.post("/<int:refund_id>/process")
@require_auth
@require_permission("PROCESS_REFUND")
def process_refund_route(refund_id: int):
    """
    Request body (optional):
    {"refund_details": {"transaction_id": "...", "phone_number": "...", "reference": "...", "status": "...", "remark": "..."}}
    """
    try:
        data = request.get_json(silent=True) or {}
        refund = refund_service.process_refund(
            refund_id,
            g.current_user.id,
            refund_details=data.get("refund_details"),
        )
        return jsonify({"success": True, "refund": refund.to_dict()}), 200
    except (RefundError, NotFoundError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process refund")
        return jsonify({"error": "Internal server error"}), 500


@refunds_bp.post("/<int:refund_id>/complete")
@require_auth
@require_permission("COMPLETE_REFUND")
def complete_refund_route(refund_id: int):
    """Request body: {"return_condition": "good", "inspection_notes": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        result = refund_service.complete_refund(
            refund_id,
            g.current_user.id,
            return_condition=data.get("return_condition"),
            inspection_notes=data.get("inspection_notes"),
        )
        result["refund"] = refund_service.get_refund(refund_id).to_dict()
        return jsonify(result), 200
    except (RefundError, NotFoundError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete refund")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@refunds_bp.get("")
@require_auth
@require_permission("PROCESS_REFUND")
def list_refunds_route():
    """Query params: branch_id, status, limit."""
    try:
        refunds = refund_service.list_refunds(
            branch_id=request.args.get("branch_id", type=int),
            status=request.args.get("status"),
            limit=request.args.get("limit", default=100, type=int),
        )
        return jsonify({"refunds": [r.to_dict() for r in refunds]}), 200
    except RefundError as e:
        return jsonify({"error": str(e)}), 400


@refunds_bp.get("/<int:refund_id>")
@require_auth
@require_permission("PROCESS_REFUND")
def get_refund_route(refund_id: int):
    refund = refund_service.get_refund(refund_id)
    if not refund:
        return jsonify({"error": "Refund not found"}), 404
    return jsonify({"refund": refund.to_dict()}), 200


@refunds_bp.get("/<int:refund_id>/audit")
@require_auth
@require_permission("PROCESS_REFUND")
def audit_trail_route(refund_id: int):
    if not refund_service.get_refund(refund_id):
        return jsonify({"error": "Refund not found"}), 404
    entries = refund_service.get_audit_trail(refund_id)
    return jsonify({"audit_trail": [e.to_dict() for e in entries]}), 200


@refunds_bp.get("/pending")
@require_auth
@require_permission("APPROVE_REFUND")
def pending_approval_route():
    refunds = refund_service.get_pending_approval(request.args.get("branch_id", type=int))
    return jsonify({"refunds": [r.to_dict() for r in refunds]}), 200


@refunds_bp.get("/by-sale/<int:sale_id>")
@require_auth
@require_permission("PROCESS_REFUND")
def refunds_by_sale_route(sale_id: int):
    refunds = refund_service.get_refunds_by_sale(sale_id)
    return jsonify({"refunds": [r.to_dict() for r in refunds]}), 200


@refunds_bp.get("/by-customer/<int:customer_id>")
@require_auth
@require_permission("PROCESS_REFUND")
def refunds_by_customer_route(customer_id: int):
    refunds = refund_service.get_refunds_by_customer(customer_id)
    return jsonify({"refunds": [r.to_dict() for r in refunds]}), 200


@refunds_bp.get("/statistics")
@require_auth
@require_permission("VIEW_REPORTS")
def refund_statistics_route():
    """Query params: branch_id, start, end (ISO-8601)."""
    try:
        stats = refund_service.get_refund_statistics(
            branch_id=request.args.get("branch_id", type=int),
            start=optional_datetime(request.args.get("start"), "start"),
            end=optional_datetime(request.args.get("end"), "end"),
        )
        return jsonify(stats), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


# =============================================================================
# POLICY
# =============================================================================

@refunds_bp.get("/policy/<int:branch_id>")
@require_auth
@require_permission("PROCESS_REFUND")
def get_policy_route(branch_id: int):
    """A branch without a policy returns null plus the defaults a new policy would get."""
    policy = refund_service.get_policy(branch_id)
    return jsonify({
        "policy": policy.to_dict() if policy else None,
        "defaults": POLICY_DEFAULTS,
    }), 200


@refunds_bp.put("/policy/<int:branch_id>")
@require_auth
@require_permission("MANAGE_REFUND_POLICY")
def update_policy_route(branch_id: int):
    """Request body: any subset of the policy fields."""
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "JSON object body required"}), 400
        fields = {k: v for k, v in data.items() if k not in ("branch_id", "user_id")}
        policy = refund_service.update_policy(branch_id, g.current_user.id, **fields)
        return jsonify({"policy": policy.to_dict()}), 200
    except (RefundError, NotFoundError) as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update refund policy")
        return jsonify({"error": "Internal server error"}), 500
