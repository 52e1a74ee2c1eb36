# Overview: Flask API routes for dashboard analytics; read-only.

from flask import Blueprint, request, jsonify, g

from ..services import analytics_service
from ..decorators import require_tenant
from .common import DOMAIN_ERRORS, error_response, arg_datetime

analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


@analytics_bp.get("/overview")
@require_tenant
def overview_route():
    return jsonify(analytics_service.product_overview(business_id=g.business_id)), 200


@analytics_bp.get("/stock-summary")
@require_tenant
def stock_summary_route():
    """Query params: threshold (default LOW_STOCK_THRESHOLD), limit (critical list size)."""
    result = analytics_service.stock_summary(
        business_id=g.business_id,
        threshold=request.args.get("threshold", type=int),
        critical_limit=request.args.get("limit", default=10, type=int),
    )
    return jsonify(result), 200


@analytics_bp.get("/categories")
@require_tenant
def categories_route():
    """Query params: top (default 5)."""
    items = analytics_service.category_distribution(
        business_id=g.business_id, top=request.args.get("top", default=5, type=int)
    )
    return jsonify({"items": items}), 200


@analytics_bp.get("/invoices")
@require_tenant
def invoices_route():
    return jsonify(analytics_service.invoice_stats(business_id=g.business_id)), 200


@analytics_bp.get("/clients")
@require_tenant
def clients_route():
    return jsonify(analytics_service.client_stats(business_id=g.business_id)), 200


@analytics_bp.get("/daily")
@require_tenant
def daily_route():
    """Query params: from, to (ISO-8601; a bare date in "to" includes that day)."""
    try:
        rows = analytics_service.daily_rollup(
            business_id=g.business_id,
            date_from=arg_datetime("from"),
            date_to=arg_datetime("to", inclusive_end=True),
        )
        return jsonify({"items": rows}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
