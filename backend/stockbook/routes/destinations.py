from flask import Blueprint, jsonify, g, current_app

from ..models import Destination
from ..services import destination_service
from ..validation import ModelValidationPolicy, validate_payload, blank_to_none
from ..decorators import require_tenant
from .common import DOMAIN_ERRORS, error_response, json_body

DESTINATION_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

destinations_bp = Blueprint("destinations", __name__, url_prefix="/api/destinations")


@destinations_bp.get("")
@require_tenant
def list_destinations_route():
    items = destination_service.list_destinations(business_id=g.business_id)
    return jsonify({"items": [d.to_dict() for d in items]}), 200


@destinations_bp.post("")
@require_tenant
def create_destination_route():
    try:
        patch = validate_payload(
            model=Destination, payload=json_body(), policy=DESTINATION_POLICY, partial=False
        )
        blank_to_none(patch, "description")
        destination = destination_service.create_destination(business_id=g.business_id, patch=patch)
        return jsonify({"destination": destination.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create destination")
        return jsonify({"error": "Internal server error"}), 500
