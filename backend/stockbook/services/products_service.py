# backend/stockbook/services/products_service.py
"""
Products Service

MULTI-TENANT: every operation takes business_id; category and subcategory ids
from the payload are checked against the same business.

STOCK: quantity is not a writable field here. New products start at 0 and
only stock_service / invoice_service move it.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Product, Category, SubCategory, StockTransaction
from ..validation import ConflictError, ValidationError
from .pagination import paginate
from .tenant_service import get_owned

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "description",
    "reference",
    "unit",
    "image_url",
    "price_cents",
    "purchase_price_cents",
    "category_id",
    "sub_category_id",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _check_classification(business_id: int, category_id: int, sub_category_id: int | None) -> None:
    get_owned(Category, category_id, business_id)
    if sub_category_id is not None:
        sub = get_owned(SubCategory, sub_category_id, business_id, label="Subcategory")
        if sub.category_id != category_id:
            raise ValidationError("sub_category_id does not belong to category_id")


def list_products(
    *,
    business_id: int,
    search: str | None = None,
    category_id: int | None = None,
    sub_category_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing, alphabetical.

    search matches name or reference (case-insensitive substring).
    page=None returns everything.
    """
    q = db.session.query(Product).filter(Product.business_id == business_id)

    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(pattern), Product.reference.ilike(pattern)))
    if category_id is not None:
        q = q.filter(Product.category_id == category_id)
    if sub_category_id is not None:
        q = q.filter(Product.sub_category_id == sub_category_id)

    q = q.order_by(Product.name.asc(), Product.id.asc())
    return paginate(q, page, per_page)


def get_product(*, business_id: int, product_id: int) -> Product:
    return get_owned(Product, product_id, business_id)


def create_product(*, business_id: int, patch: dict) -> Product:
    _check_classification(business_id, patch["category_id"], patch.get("sub_category_id"))

    p = Product(business_id=business_id, quantity=0)
    apply_product_patch(p, patch)
    db.session.add(p)
    db.session.commit()

    current_app.logger.info("Created product business=%s id=%s name=%s", business_id, p.id, p.name)
    return p


def update_product(*, business_id: int, product_id: int, patch: dict) -> Product:
    p = get_owned(Product, product_id, business_id)

    if "category_id" in patch or "sub_category_id" in patch:
        category_id = patch.get("category_id", p.category_id)
        sub_category_id = patch.get("sub_category_id", p.sub_category_id)
        # Moving to another category drops a subcategory that no longer fits
        if "category_id" in patch and "sub_category_id" not in patch and category_id != p.category_id:
            patch["sub_category_id"] = sub_category_id = None
        _check_classification(business_id, category_id, sub_category_id)

    apply_product_patch(p, patch)
    db.session.commit()
    return p


def delete_product(*, business_id: int, product_id: int) -> None:
    """Only products without ledger history can be deleted."""
    p = get_owned(Product, product_id, business_id)

    has_history = (
        db.session.query(StockTransaction.id).filter(StockTransaction.product_id == p.id).first()
    )
    if has_history:
        raise ConflictError("Product has stock transactions and cannot be deleted")

    db.session.delete(p)
    db.session.commit()
    current_app.logger.info("Deleted product business=%s id=%s", business_id, product_id)
