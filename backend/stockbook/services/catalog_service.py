# Overview: Categories and subcategories, the two-level product classification.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Category, SubCategory, Product
from ..validation import ConflictError
from .tenant_service import get_owned

CATEGORY_MUTABLE_FIELDS = {"name", "description"}
SUB_CATEGORY_MUTABLE_FIELDS = {"name", "description", "category_id"}


def _apply_patch(obj, patch: dict, fields: set[str]) -> None:
    for k, v in patch.items():
        if k in fields:
            setattr(obj, k, v)


def _category_name_taken(business_id: int, name: str, exclude_id: int | None = None) -> bool:
    q = db.session.query(Category.id).filter(
        Category.business_id == business_id,
        func.lower(Category.name) == name.lower(),
    )
    if exclude_id is not None:
        q = q.filter(Category.id != exclude_id)
    return q.first() is not None


def _sub_category_name_taken(category_id: int, name: str, exclude_id: int | None = None) -> bool:
    q = db.session.query(SubCategory.id).filter(
        SubCategory.category_id == category_id,
        func.lower(SubCategory.name) == name.lower(),
    )
    if exclude_id is not None:
        q = q.filter(SubCategory.id != exclude_id)
    return q.first() is not None


def list_categories(*, business_id: int) -> list[dict]:
    """Categories with product and subcategory counts, alphabetical."""
    product_counts = dict(
        db.session.query(Product.category_id, func.count(Product.id))
        .filter(Product.business_id == business_id)
        .group_by(Product.category_id)
        .all()
    )
    sub_counts = dict(
        db.session.query(SubCategory.category_id, func.count(SubCategory.id))
        .filter(SubCategory.business_id == business_id)
        .group_by(SubCategory.category_id)
        .all()
    )
    categories = (
        db.session.query(Category)
        .filter(Category.business_id == business_id)
        .order_by(Category.name.asc(), Category.id.asc())
        .all()
    )

    result = []
    for c in categories:
        data = c.to_dict()
        data["product_count"] = product_counts.get(c.id, 0)
        data["sub_category_count"] = sub_counts.get(c.id, 0)
        result.append(data)
    return result


def create_category(*, business_id: int, patch: dict) -> Category:
    if _category_name_taken(business_id, patch["name"]):
        raise ConflictError(f"Category '{patch['name']}' already exists")

    category = Category(business_id=business_id)
    _apply_patch(category, patch, CATEGORY_MUTABLE_FIELDS)
    db.session.add(category)
    db.session.commit()

    current_app.logger.info("Created category business=%s id=%s", business_id, category.id)
    return category


def update_category(*, business_id: int, category_id: int, patch: dict) -> Category:
    category = get_owned(Category, category_id, business_id)
    if "name" in patch and _category_name_taken(business_id, patch["name"], exclude_id=category.id):
        raise ConflictError(f"Category '{patch['name']}' already exists")

    _apply_patch(category, patch, CATEGORY_MUTABLE_FIELDS)
    db.session.commit()
    return category


def delete_category(*, business_id: int, category_id: int) -> None:
    """Refused while any product is filed under the category. Empty subcategories go with it."""
    category = get_owned(Category, category_id, business_id)

    in_use = db.session.query(Product.id).filter(Product.category_id == category.id).first()
    if in_use:
        raise ConflictError("Category still has products")

    db.session.query(SubCategory).filter(SubCategory.category_id == category.id).delete(
        synchronize_session=False
    )
    db.session.delete(category)
    db.session.commit()
    current_app.logger.info("Deleted category business=%s id=%s", business_id, category_id)


def list_sub_categories(*, business_id: int, category_id: int | None = None) -> list[dict]:
    q = db.session.query(SubCategory).filter(SubCategory.business_id == business_id)
    if category_id is not None:
        q = q.filter(SubCategory.category_id == category_id)
    return [s.to_dict() for s in q.order_by(SubCategory.name.asc(), SubCategory.id.asc()).all()]


def create_sub_category(*, business_id: int, patch: dict) -> SubCategory:
    category = get_owned(Category, patch["category_id"], business_id)
    if _sub_category_name_taken(category.id, patch["name"]):
        raise ConflictError(f"Subcategory '{patch['name']}' already exists in {category.name}")

    sub = SubCategory(business_id=business_id)
    _apply_patch(sub, patch, SUB_CATEGORY_MUTABLE_FIELDS)
    db.session.add(sub)
    db.session.commit()

    current_app.logger.info("Created subcategory business=%s id=%s", business_id, sub.id)
    return sub


def update_sub_category(*, business_id: int, sub_category_id: int, patch: dict) -> SubCategory:
    sub = get_owned(SubCategory, sub_category_id, business_id, label="Subcategory")

    category_id = patch.get("category_id", sub.category_id)
    if "category_id" in patch:
        get_owned(Category, category_id, business_id)
        moving = category_id != sub.category_id
        if moving and db.session.query(Product.id).filter(Product.sub_category_id == sub.id).first():
            raise ConflictError("Subcategory still has products")

    name = patch.get("name", sub.name)
    if _sub_category_name_taken(category_id, name, exclude_id=sub.id):
        raise ConflictError(f"Subcategory '{name}' already exists")

    _apply_patch(sub, patch, SUB_CATEGORY_MUTABLE_FIELDS)
    db.session.commit()
    return sub


def delete_sub_category(*, business_id: int, sub_category_id: int) -> None:
    sub = get_owned(SubCategory, sub_category_id, business_id, label="Subcategory")

    in_use = db.session.query(Product.id).filter(Product.sub_category_id == sub.id).first()
    if in_use:
        raise ConflictError("Subcategory still has products")

    db.session.delete(sub)
    db.session.commit()
    current_app.logger.info("Deleted subcategory business=%s id=%s", business_id, sub_category_id)
