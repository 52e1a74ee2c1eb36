# Overview: Flask API routes for clients; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Client
from ..services import client_service
from ..validation import ModelValidationPolicy, validate_payload, blank_to_none
from ..decorators import require_tenant
from .common import DOMAIN_ERRORS, error_response, json_body

CLIENT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address"},
    required_on_create={"name", "address"},
)

clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


def _validated_patch(partial: bool) -> dict:
    patch = validate_payload(model=Client, payload=json_body(), policy=CLIENT_POLICY, partial=partial)
    return blank_to_none(patch, "email", "phone")


@clients_bp.get("")
@require_tenant
def list_clients_route():
    """Query params: page, per_page (optional). Each item carries invoice_count."""
    result = client_service.list_clients(
        business_id=g.business_id,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result), 200


@clients_bp.get("/search")
@require_tenant
def search_clients_route():
    """Query params: q (matches name, email, phone or address), limit."""
    items = client_service.search_clients(
        business_id=g.business_id,
        query=request.args.get("q", ""),
        limit=min(request.args.get("limit", default=20, type=int), 100),
    )
    return jsonify({"items": items, "count": len(items)}), 200


@clients_bp.post("")
@require_tenant
def create_client_route():
    try:
        patch = _validated_patch(partial=False)
        client = client_service.create_client(business_id=g.business_id, patch=patch)
        return jsonify({"client": client.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create client")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.get("/<int:client_id>")
@require_tenant
def get_client_route(client_id: int):
    try:
        return jsonify({"client": client_service.get_client(business_id=g.business_id, client_id=client_id)}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)


@clients_bp.put("/<int:client_id>")
@require_tenant
def update_client_route(client_id: int):
    try:
        patch = _validated_patch(partial=True)
        client = client_service.update_client(business_id=g.business_id, client_id=client_id, patch=patch)
        return jsonify({"client": client.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update client")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.delete("/<int:client_id>")
@require_tenant
def delete_client_route(client_id: int):
    try:
        client_service.delete_client(business_id=g.business_id, client_id=client_id)
        return jsonify({"ok": True}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete client")
        return jsonify({"error": "Internal server error"}), 500
