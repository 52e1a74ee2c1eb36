# Overview: Flask API routes for categories and subcategories; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Category, SubCategory
from ..services import catalog_service
from ..validation import ModelValidationPolicy, validate_payload, blank_to_none
from ..decorators import require_tenant
from .common import DOMAIN_ERRORS, error_response, json_body

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

SUB_CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "category_id"},
    required_on_create={"name", "category_id"},
)

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


@catalog_bp.get("/categories")
@require_tenant
def list_categories_route():
    """Categories with product_count and sub_category_count."""
    return jsonify({"items": catalog_service.list_categories(business_id=g.business_id)}), 200


@catalog_bp.post("/categories")
@require_tenant
def create_category_route():
    try:
        patch = validate_payload(model=Category, payload=json_body(), policy=CATEGORY_POLICY, partial=False)
        blank_to_none(patch, "description")
        category = catalog_service.create_category(business_id=g.business_id, patch=patch)
        return jsonify({"category": category.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.put("/categories/<int:category_id>")
@require_tenant
def update_category_route(category_id: int):
    try:
        patch = validate_payload(model=Category, payload=json_body(), policy=CATEGORY_POLICY, partial=True)
        blank_to_none(patch, "description")
        category = catalog_service.update_category(
            business_id=g.business_id, category_id=category_id, patch=patch
        )
        return jsonify({"category": category.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/categories/<int:category_id>")
@require_tenant
def delete_category_route(category_id: int):
    try:
        catalog_service.delete_category(business_id=g.business_id, category_id=category_id)
        return jsonify({"ok": True}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete category")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/subcategories")
@require_tenant
def list_sub_categories_route():
    """Query params: category_id (optional)."""
    category_id = request.args.get("category_id", type=int)
    items = catalog_service.list_sub_categories(business_id=g.business_id, category_id=category_id)
    return jsonify({"items": items}), 200


@catalog_bp.post("/subcategories")
@require_tenant
def create_sub_category_route():
    try:
        patch = validate_payload(
            model=SubCategory, payload=json_body(), policy=SUB_CATEGORY_POLICY, partial=False
        )
        blank_to_none(patch, "description")
        sub = catalog_service.create_sub_category(business_id=g.business_id, patch=patch)
        return jsonify({"sub_category": sub.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create subcategory")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.put("/subcategories/<int:sub_category_id>")
@require_tenant
def update_sub_category_route(sub_category_id: int):
    try:
        patch = validate_payload(
            model=SubCategory, payload=json_body(), policy=SUB_CATEGORY_POLICY, partial=True
        )
        blank_to_none(patch, "description")
        sub = catalog_service.update_sub_category(
            business_id=g.business_id, sub_category_id=sub_category_id, patch=patch
        )
        return jsonify({"sub_category": sub.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update subcategory")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/subcategories/<int:sub_category_id>")
@require_tenant
def delete_sub_category_route(sub_category_id: int):
    try:
        catalog_service.delete_sub_category(business_id=g.business_id, sub_category_id=sub_category_id)
        return jsonify({"ok": True}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete subcategory")
        return jsonify({"error": "Internal server error"}), 500
