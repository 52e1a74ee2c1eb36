# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/stockbook/routes/products.py
"""
Product management routes.

MULTI-TENANT: every operation is scoped to g.business_id (set by @require_tenant).

STOCK: quantity is not in the writable fields. Use /api/stock/replenish and
/api/stock/deduct (or invoices) to move stock.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..models import Product
from ..services import products_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    blank_to_none,
)
from ..decorators import require_tenant
from .common import DOMAIN_ERRORS, error_response, json_body

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "description",
        "reference",
        "unit",
        "image_url",
        "price_cents",
        "purchase_price_cents",
        "category_id",
        "sub_category_id",
    },
    required_on_create={"name", "category_id", "price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _validated_patch(partial: bool) -> dict:
    patch = validate_payload(model=Product, payload=json_body(), policy=PRODUCT_POLICY, partial=partial)
    enforce_rules_product(patch)
    return blank_to_none(patch, "description", "reference", "image_url")


@products_bp.get("")
@require_tenant
def list_products_route():
    """
    List products.

    Query params:
    - search: str (optional) - substring of name or reference
    - category_id, sub_category_id: int (optional)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    result = products_service.list_products(
        business_id=g.business_id,
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        sub_category_id=request.args.get("sub_category_id", type=int),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result), 200


@products_bp.post("")
@require_tenant
def create_product_route():
    try:
        patch = _validated_patch(partial=False)
        product = products_service.create_product(business_id=g.business_id, patch=patch)
        return jsonify({"product": product.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_tenant
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(business_id=g.business_id, product_id=product_id)
        return jsonify({"product": product.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)


@products_bp.put("/<int:product_id>")
@require_tenant
def update_product_route(product_id: int):
    try:
        patch = _validated_patch(partial=True)
        product = products_service.update_product(
            business_id=g.business_id, product_id=product_id, patch=patch
        )
        return jsonify({"product": product.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_tenant
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(business_id=g.business_id, product_id=product_id)
        return jsonify({"ok": True}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
