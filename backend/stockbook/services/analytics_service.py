# Overview: Read-only aggregations for the dashboard; no writes happen here.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import case, func

from ..extensions import db
from ..models import (
    Category,
    Client,
    Invoice,
    INVOICE_STATUSES,
    Product,
    StockTransaction,
    SubCategory,
)
from stockbook.time_utils import to_day


def _scalar(query) -> int:
    return int(query.scalar() or 0)


def product_overview(*, business_id: int) -> dict:
    """Headline counts plus stock value at sale and purchase price."""
    products = db.session.query(Product).filter(Product.business_id == business_id)

    return {
        "product_count": _scalar(products.with_entities(func.count(Product.id))),
        "category_count": _scalar(
            db.session.query(func.count(Category.id)).filter(Category.business_id == business_id)
        ),
        "transaction_count": _scalar(
            db.session.query(func.count(StockTransaction.id)).filter(
                StockTransaction.business_id == business_id
            )
        ),
        "total_units": _scalar(products.with_entities(func.coalesce(func.sum(Product.quantity), 0))),
        "stock_value_cents": _scalar(
            products.with_entities(func.coalesce(func.sum(Product.quantity * Product.price_cents), 0))
        ),
        "stock_cost_cents": _scalar(
            products.with_entities(
                func.coalesce(
                    func.sum(Product.quantity * func.coalesce(Product.purchase_price_cents, 0)), 0
                )
            )
        ),
    }


def stock_summary(*, business_id: int, threshold: int | None = None, critical_limit: int = 10) -> dict:
    """
    Products bucketed by quantity:
    - out of stock: 0
    - low stock: 1..threshold
    - in stock: > threshold
    critical lists the lowest-stock products (quantity <= threshold), lowest first.
    """
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]

    row = (
        db.session.query(
            func.count(Product.id),
            func.coalesce(func.sum(case((Product.quantity > threshold, 1), else_=0)), 0),
            func.coalesce(
                func.sum(case(((Product.quantity > 0) & (Product.quantity <= threshold), 1), else_=0)), 0
            ),
            func.coalesce(func.sum(case((Product.quantity == 0, 1), else_=0)), 0),
        )
        .filter(Product.business_id == business_id)
        .one()
    )

    critical = (
        db.session.query(Product)
        .filter(Product.business_id == business_id, Product.quantity <= threshold)
        .order_by(Product.quantity.asc(), Product.name.asc())
        .limit(critical_limit)
        .all()
    )

    return {
        "threshold": threshold,
        "total": int(row[0]),
        "in_stock": int(row[1]),
        "low_stock": int(row[2]),
        "out_of_stock": int(row[3]),
        "critical": [
            {
                "id": p.id,
                "name": p.name,
                "quantity": p.quantity,
                "unit": p.unit,
                "category_name": p.category.name if p.category else None,
            }
            for p in critical
        ],
    }


def category_distribution(*, business_id: int, top: int = 5) -> list[dict]:
    """Product count per category with a per-subcategory breakdown, largest first."""
    category_counts = (
        db.session.query(Category.id, Category.name, func.count(Product.id).label("product_count"))
        .outerjoin(Product, Product.category_id == Category.id)
        .filter(Category.business_id == business_id)
        .group_by(Category.id, Category.name)
        .order_by(func.count(Product.id).desc(), Category.name.asc())
        .limit(top)
        .all()
    )
    category_ids = [row.id for row in category_counts]

    sub_rows = (
        db.session.query(
            SubCategory.category_id,
            SubCategory.id,
            SubCategory.name,
            func.count(Product.id).label("product_count"),
        )
        .outerjoin(Product, Product.sub_category_id == SubCategory.id)
        .filter(SubCategory.category_id.in_(category_ids))
        .group_by(SubCategory.category_id, SubCategory.id, SubCategory.name)
        .order_by(func.count(Product.id).desc(), SubCategory.name.asc())
        .all()
        if category_ids
        else []
    )

    subs: dict[int, list[dict]] = {}
    for r in sub_rows:
        subs.setdefault(r.category_id, []).append(
            {"id": r.id, "name": r.name, "product_count": int(r.product_count)}
        )

    return [
        {
            "category_id": row.id,
            "name": row.name,
            "product_count": int(row.product_count),
            "sub_categories": subs.get(row.id, []),
        }
        for row in category_counts
    ]


def invoice_stats(*, business_id: int) -> dict:
    """
    Counts per status and revenue over live (not cancelled) invoices.

    payment_rate = paid / total * 100, rounded to one decimal.
    """
    rows = (
        db.session.query(
            Invoice.status,
            func.count(Invoice.id),
            func.coalesce(func.sum(Invoice.total_cents), 0),
        )
        .filter(Invoice.business_id == business_id, Invoice.voided_at.is_(None))
        .group_by(Invoice.status)
        .all()
    )
    counts = {status: 0 for status in INVOICE_STATUSES}
    amounts = {status: 0 for status in INVOICE_STATUSES}
    for status, count, amount in rows:
        counts[status] = int(count)
        amounts[status] = int(amount)

    total = sum(counts.values())
    voided = _scalar(
        db.session.query(func.count(Invoice.id)).filter(
            Invoice.business_id == business_id, Invoice.voided_at.isnot(None)
        )
    )

    return {
        "total": total,
        "paid": counts["PAID"],
        "unpaid": counts["UNPAID"],
        "pending": counts["PENDING"],
        "cancelled": voided,
        "total_revenue_cents": amounts["PAID"],
        "outstanding_cents": amounts["UNPAID"] + amounts["PENDING"],
        "payment_rate": round(counts["PAID"] / total * 100, 1) if total else 0.0,
    }


def client_stats(*, business_id: int) -> dict:
    base = db.session.query(Client).filter(Client.business_id == business_id)
    with_invoices = _scalar(
        db.session.query(func.count(func.distinct(Invoice.client_id))).filter(
            Invoice.business_id == business_id
        )
    )
    return {
        "total": _scalar(base.with_entities(func.count(Client.id))),
        "with_email": _scalar(base.filter(Client.email.isnot(None)).with_entities(func.count(Client.id))),
        "with_phone": _scalar(base.filter(Client.phone.isnot(None)).with_entities(func.count(Client.id))),
        "with_invoices": with_invoices,
    }


def daily_rollup(
    *,
    business_id: int,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> list[dict]:
    """
    Per-day ledger totals, oldest day first.

    sales_cents = gross_sales_cents - returns_cents
    net_cents = sales_cents - purchases_cents
    """
    day = func.date(StockTransaction.created_at)

    def _sum_of(tx_type: str):
        return func.coalesce(
            func.sum(case((StockTransaction.type == tx_type, StockTransaction.subtotal_cents), else_=0)), 0
        )

    query = (
        db.session.query(
            day.label("day"),
            func.count(StockTransaction.id).label("transaction_count"),
            _sum_of("SALE").label("gross_sales_cents"),
            _sum_of("RETURN").label("returns_cents"),
            _sum_of("PURCHASE").label("purchases_cents"),
        )
        .filter(StockTransaction.business_id == business_id)
    )
    if date_from is not None:
        query = query.filter(StockTransaction.created_at >= date_from)
    if date_to is not None:
        query = query.filter(StockTransaction.created_at <= date_to)

    rows = query.group_by(day).order_by(day.asc()).all()

    result = []
    for r in rows:
        gross = int(r.gross_sales_cents)
        returns = int(r.returns_cents)
        purchases = int(r.purchases_cents)
        sales = gross - returns
        result.append({
            "day": to_day(r.day),
            "transaction_count": int(r.transaction_count),
            "gross_sales_cents": gross,
            "returns_cents": returns,
            "sales_cents": sales,
            "purchases_cents": purchases,
            "net_cents": sales - purchases,
        })
    return result
