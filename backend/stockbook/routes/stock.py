# Overview: Flask API routes for stock movements and the ledger; parses input and returns JSON responses.

# backend/stockbook/routes/stock.py
"""
Stock API routes.

Every endpoint that changes Product.quantity goes through stock_service, which
writes the matching ledger row in the same transaction.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..models import TRANSACTION_TYPES, INVOICE_STATUSES
from ..services import stock_service
from ..validation import ValidationError
from ..decorators import require_tenant
from .common import DOMAIN_ERRORS, error_response, json_body, optional_int, arg_datetime

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.post("/deduct")
@require_tenant
def deduct_route():
    """
    Take stock out for one or more products.

    Body: {"items": [{"product_id", "quantity"}], "destination_id"?, "transaction_type"?, "note"?}
    409 with details.items when any product is short; nothing is written then.
    """
    try:
        data = json_body()
        created = stock_service.deduct_stock(
            business_id=g.business_id,
            items=data.get("items"),
            destination_id=optional_int(data, "destination_id"),
            transaction_type=data.get("transaction_type") or "SALE",
            note=data.get("note"),
        )
        return jsonify({"transactions": [tx.to_dict() for tx in created]}), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deduct stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/preview")
@require_tenant
def preview_route():
    """Dry run of /deduct: same check, no writes."""
    try:
        data = json_body()
        result = stock_service.preview_deduction(business_id=g.business_id, items=data.get("items"))
        return jsonify(result), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)


@stock_bp.post("/replenish")
@require_tenant
def replenish_route():
    """Body: {"product_id", "quantity", "unit_cost_cents"?, "note"?}"""
    try:
        data = json_body()
        product_id = optional_int(data, "product_id")
        if product_id is None:
            raise ValidationError("product_id is required")

        product, tx = stock_service.replenish_stock(
            business_id=g.business_id,
            product_id=product_id,
            quantity=data.get("quantity"),
            unit_cost_cents=data.get("unit_cost_cents"),
            note=data.get("note"),
        )
        return jsonify({"product": product.to_dict(), "transaction": tx.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to replenish stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/transactions")
@require_tenant
def list_transactions_route():
    """
    Query params:
    - product_id: int
    - type: PURCHASE | SALE | RETURN
    - from, to: ISO-8601 (a bare date in "to" includes that whole day)
    - invoice_status: PAID | UNPAID | PENDING | CANCELLED | NO_INVOICE
    - limit: int
    """
    try:
        tx_type = request.args.get("type")
        if tx_type is not None and tx_type not in TRANSACTION_TYPES:
            raise ValidationError(f"type must be one of {', '.join(TRANSACTION_TYPES)}")
        invoice_status = request.args.get("invoice_status")
        allowed_statuses = (*INVOICE_STATUSES, stock_service.CANCELLED_STATUS, "NO_INVOICE")
        if invoice_status is not None and invoice_status not in allowed_statuses:
            raise ValidationError("invoice_status must be PAID, UNPAID, PENDING, CANCELLED or NO_INVOICE")

        rows = stock_service.list_transactions(
            business_id=g.business_id,
            product_id=request.args.get("product_id", type=int),
            tx_type=tx_type,
            date_from=arg_datetime("from"),
            date_to=arg_datetime("to", inclusive_end=True),
            invoice_status=invoice_status,
            limit=request.args.get("limit", type=int),
        )
        return jsonify({"items": [tx.to_dict() for tx in rows], "count": len(rows)}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)


@stock_bp.get("/transactions/<int:transaction_id>/invoice-status")
@require_tenant
def transaction_invoice_status_route(transaction_id: int):
    try:
        result = stock_service.get_transaction_invoice_status(
            business_id=g.business_id, transaction_id=transaction_id
        )
        return jsonify(result), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
