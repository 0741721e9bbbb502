from flask import Blueprint, Response, current_app, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
@require_auth
@require_permission("VIEW_REPORTS")
def sales_report():
    try:
        report = reporting_service.sales_summary(
            branch_id=request.args.get("branch_id", type=int),
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/sales.csv")
@require_auth
@require_permission("VIEW_REPORTS")
def sales_csv_export():
    try:
        body = reporting_service.sales_csv(
            branch_id=request.args.get("branch_id", type=int),
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400

    store = current_app.config.get("STORE_NAME", "store").lower().replace(" ", "-")
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={store}-sales.csv"},
    )


@reports_bp.get("/inventory")
@require_auth
@require_permission("VIEW_REPORTS")
def inventory_report():
    return jsonify(reporting_service.inventory_metrics()), 200


@reports_bp.get("/refunds")
@require_auth
@require_permission("VIEW_REPORTS")
def refunds_report():
    try:
        report = reporting_service.refund_statistics(
            branch_id=request.args.get("branch_id", type=int),
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
