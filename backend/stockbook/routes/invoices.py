# Overview: Flask API routes for invoices; parses input and returns JSON responses.

# backend/stockbook/routes/invoices.py
"""
Invoice API routes.

Creating an invoice also takes its stock out (one transaction). There is no
hard delete: POST /<id>/cancel voids the invoice and returns its stock.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import invoice_service
from ..decorators import require_tenant
from .common import DOMAIN_ERRORS, error_response, json_body, optional_int, arg_datetime, arg_bool

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _detail(invoice_id: int) -> dict:
    return invoice_service.get_invoice(business_id=g.business_id, invoice_id=invoice_id)


@invoices_bp.get("")
@require_tenant
def list_invoices_route():
    """
    Query params:
    - status: PAID | UNPAID | PENDING
    - client_id: int
    - from, to: ISO-8601 on issue date
    - include_voided: bool (default false)
    - page, per_page
    """
    try:
        result = invoice_service.list_invoices(
            business_id=g.business_id,
            status=request.args.get("status"),
            client_id=request.args.get("client_id", type=int),
            date_from=arg_datetime("from"),
            date_to=arg_datetime("to", inclusive_end=True),
            include_voided=arg_bool("include_voided"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)


@invoices_bp.post("")
@require_tenant
def create_invoice_route():
    """
    Body:
    {
      "client_id": int,
      "lines": [{"product_id", "quantity", "unit_price_cents"?}],
      "tax_rate_bps"?: int, "tax_enabled"?: bool, "status"?: str,
      "invoice_number"?: str, "destination_id"?: int
    }
    """
    try:
        data = json_body()
        invoice = invoice_service.create_invoice(
            business_id=g.business_id,
            client_id=data.get("client_id"),
            lines=data.get("lines"),
            tax_rate_bps=data.get("tax_rate_bps"),
            tax_enabled=data.get("tax_enabled", True),
            status=data.get("status") or "UNPAID",
            invoice_number=data.get("invoice_number"),
            destination_id=optional_int(data, "destination_id"),
        )
        return jsonify({"invoice": _detail(invoice.id)}), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/next-number")
@require_tenant
def next_number_route():
    """Reserve a number up front (e.g. to print it before the invoice is saved)."""
    try:
        number = invoice_service.generate_invoice_number(business_id=g.business_id)
        return jsonify({"invoice_number": number}), 201
    except Exception:
        current_app.logger.exception("Failed to allocate invoice number")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
@require_tenant
def get_invoice_route(invoice_id: int):
    """Full document: header, business, client and lines. Input for the PDF renderer."""
    try:
        return jsonify({"invoice": _detail(invoice_id)}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)


@invoices_bp.post("/<int:invoice_id>/status")
@require_tenant
def update_status_route(invoice_id: int):
    try:
        data = json_body()
        invoice_service.update_invoice_status(
            business_id=g.business_id, invoice_id=invoice_id, new_status=data.get("status")
        )
        return jsonify({"invoice": _detail(invoice_id)}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update invoice status")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/lines")
@require_tenant
def add_line_route(invoice_id: int):
    try:
        data = json_body()
        invoice_service.add_invoice_line(
            business_id=g.business_id,
            invoice_id=invoice_id,
            product_id=data.get("product_id"),
            quantity=data.get("quantity"),
            unit_price_cents=data.get("unit_price_cents"),
        )
        return jsonify({"invoice": _detail(invoice_id)}), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add invoice line")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.put("/<int:invoice_id>")
@require_tenant
def update_invoice_route(invoice_id: int):
    """
    Any of client_id, lines, tax_rate_bps, tax_enabled, status, invoice_number.
    Lines replace the current ones.
    """
    try:
        data = json_body()
        invoice_service.update_invoice(
            business_id=g.business_id,
            invoice_id=invoice_id,
            client_id=data.get("client_id"),
            lines=data.get("lines"),
            tax_rate_bps=data.get("tax_rate_bps"),
            tax_enabled=data.get("tax_enabled"),
            status=data.get("status"),
            invoice_number=data.get("invoice_number"),
        )
        return jsonify({"invoice": _detail(invoice_id)}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/cancel")
@require_tenant
def cancel_invoice_route(invoice_id: int):
    try:
        data = json_body()
        invoice_service.cancel_invoice(
            business_id=g.business_id, invoice_id=invoice_id, reason=data.get("reason")
        )
        return jsonify({"invoice": _detail(invoice_id)}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel invoice")
        return jsonify({"error": "Internal server error"}), 500
