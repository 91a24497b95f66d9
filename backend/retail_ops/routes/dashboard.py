# Overview: Flask API routes for dashboard reporting.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_admin
from ..services import reporting_service
from ..services.reporting_service import ReportError


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/stats")
@require_auth
def stats():
    """Revenue fields are only present for admins."""
    is_admin = g.current_user.get("role") == "admin"
    return jsonify(reporting_service.dashboard_stats(include_revenue=is_admin)), 200


@dashboard_bp.get("/low-stock")
@require_auth
def low_stock():
    return jsonify({
        "low_stock": reporting_service.low_stock_products(),
        "out_of_stock": reporting_service.out_of_stock_products(),
    }), 200


@dashboard_bp.get("/expiring")
@require_auth
def expiring():
    days = request.args.get("days", default=current_app.config["EXPIRY_ALERT_DAYS"], type=int)
    try:
        products = reporting_service.expiring_products(days)
    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"products": products, "days": days}), 200


@dashboard_bp.get("/top-selling")
@require_auth
def top_selling():
    limit = request.args.get("limit", default=5, type=int)
    return jsonify({"products": reporting_service.top_selling_products(max(1, limit))}), 200


@dashboard_bp.get("/daily-revenue")
@require_auth
@require_admin
def daily_revenue():
    days = request.args.get("days", default=30, type=int)
    try:
        series = reporting_service.daily_revenue(days)
    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"days": series}), 200
