# Overview: Stock mutation service; the only code path that writes Product.quantity.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Product, StockTransaction, Destination, Invoice
from ..validation import ValidationError, NotFoundError, parse_note, parse_quantity, parse_price, parse_line_items
from .concurrency import lock_for_update, begin_write, run_with_retry
from .tenant_service import get_owned
"""
Stock ledger invariants (authoritative)

- Product.quantity >= 0 at all times.
- Every change to Product.quantity is paired with exactly one
  StockTransaction row for that product, written in the same DB transaction.
- StockTransaction rows are append-only. Corrections are new RETURN rows
  (reverses_transaction_id), never updates or deletes.
- Deductions are all-or-nothing across the requested items: every product is
  locked and checked before the first write.
- The check always runs against a fresh, locked read of the product row,
  never against a quantity supplied by the caller.

Isolation:
- Products are read with SELECT ... FOR UPDATE in ascending id order.
- Product.version_id turns any write that raced past the lock into a
  StaleDataError, which run_with_retry answers by re-running the whole
  operation from a fresh read.
"""

OUTGOING_TYPES = ("SALE",)

# Reported for ledger rows whose invoice was voided
CANCELLED_STATUS = "CANCELLED"


class InsufficientStockError(Exception):
    """Raised when a deduction would take any product below zero."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def required_totals(items: list[dict]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for item in items:
        totals[item["product_id"]] = totals.get(item["product_id"], 0) + item["quantity"]
    return totals


def load_products(business_id: int, product_ids, *, lock: bool) -> dict[int, Product]:
    """
    Fresh read of the given products, locked when lock=True.

    Raises NotFoundError listing every id that does not exist in this business.
    """
    ids = sorted(set(product_ids))
    query = (
        db.session.query(Product)
        .filter(Product.business_id == business_id, Product.id.in_(ids))
        .order_by(Product.id.asc())
    )
    query = lock_for_update(query) if lock else query.populate_existing()
    products = {p.id: p for p in query.all()}

    missing = [pid for pid in ids if pid not in products]
    if missing:
        raise NotFoundError(f"Product not found: {', '.join(str(pid) for pid in missing)}")
    return products


def find_shortfalls(products: dict[int, Product], required: dict[int, int]) -> list[dict]:
    """The single stock-sufficiency rule. Returns one entry per failing product."""
    shortfalls = []
    for product_id, qty in sorted(required.items()):
        product = products[product_id]
        if product.quantity < qty:
            shortfalls.append({
                "product_id": product_id,
                "name": product.name,
                "unit": product.unit,
                "requested": qty,
                "available": product.quantity,
            })
    return shortfalls


def ensure_available(products: dict[int, Product], required: dict[int, int]) -> None:
    shortfalls = find_shortfalls(products, required)
    if shortfalls:
        summary = "; ".join(
            f"{s['name']}: requested {s['requested']}, available {s['available']}" for s in shortfalls
        )
        raise InsufficientStockError(
            f"Insufficient stock ({summary})",
            details={"items": shortfalls},
        )


def ensure_destination(business_id: int, destination_id: int | None) -> None:
    if destination_id is not None:
        get_owned(Destination, destination_id, business_id)


def post_movement(
    *,
    business_id: int,
    product: Product,
    tx_type: str,
    quantity: int,
    unit_price_cents: int,
    destination_id: int | None = None,
    invoice_id: int | None = None,
    reverses_transaction_id: int | None = None,
    note: str | None = None,
) -> StockTransaction:
    """
    Apply one stock movement to a locked product and append its ledger row.

    No locking, checks or commit here; callers hold the product lock and have
    already verified availability for outgoing movements.
    """
    if tx_type in OUTGOING_TYPES:
        product.quantity = product.quantity - quantity
    else:
        product.quantity = product.quantity + quantity

    if product.quantity < 0:
        raise InsufficientStockError(
            f"Negative stock detected for {product.name}",
            details={"items": [{
                "product_id": product.id,
                "name": product.name,
                "unit": product.unit,
                "requested": quantity,
                "available": product.quantity + quantity,
            }]},
        )

    tx = StockTransaction(
        business_id=business_id,
        product_id=product.id,
        type=tx_type,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        subtotal_cents=quantity * unit_price_cents,
        destination_id=destination_id,
        invoice_id=invoice_id,
        reverses_transaction_id=reverses_transaction_id,
        note=note,
    )
    db.session.add(tx)
    return tx


def deduct_stock(
    *,
    business_id: int,
    items: list[dict],
    destination_id: int | None = None,
    transaction_type: str = "SALE",
    note: str | None = None,
) -> list[StockTransaction]:
    """
    Take stock out for a batch of {product_id, quantity} items.

    All-or-nothing: if any product lacks stock, InsufficientStockError lists
    every shortfall and nothing is written.
    """
    items = parse_line_items(items)
    note = parse_note(note)
    if transaction_type not in OUTGOING_TYPES:
        raise ValidationError(f"transaction_type must be one of {', '.join(OUTGOING_TYPES)}")

    def _op():
        begin_write()
        ensure_destination(business_id, destination_id)

        required = required_totals(items)
        products = load_products(business_id, required.keys(), lock=True)
        ensure_available(products, required)

        created = [
            post_movement(
                business_id=business_id,
                product=products[item["product_id"]],
                tx_type=transaction_type,
                quantity=item["quantity"],
                unit_price_cents=products[item["product_id"]].price_cents,
                destination_id=destination_id,
                note=note,
            )
            for item in items
        ]
        db.session.flush()
        db.session.commit()
        return created

    created = run_with_retry(_op)
    current_app.logger.info(
        "Stock deducted business=%s transactions=%s destination=%s",
        business_id, [tx.id for tx in created], destination_id,
    )
    return created


def preview_deduction(*, business_id: int, items: list[dict]) -> dict:
    """
    Read-only run of the deduction check.

    Uses the same rule as deduct_stock so the UI never re-implements it.
    The answer is advisory: deduct_stock re-checks under lock.
    """
    required = required_totals(parse_line_items(items))
    products = load_products(business_id, required.keys(), lock=False)
    shortfalls = {s["product_id"] for s in find_shortfalls(products, required)}

    return {
        "ok": not shortfalls,
        "items": [
            {
                "product_id": pid,
                "name": products[pid].name,
                "unit": products[pid].unit,
                "requested": qty,
                "available": products[pid].quantity,
                "sufficient": pid not in shortfalls,
            }
            for pid, qty in sorted(required.items())
        ],
    }


def replenish_stock(
    *,
    business_id: int,
    product_id: int,
    quantity,
    unit_cost_cents=None,
    note: str | None = None,
) -> tuple[Product, StockTransaction]:
    """
    Receive stock for one product and log a PURCHASE row.

    A supplied unit cost becomes the product's purchase price. Without one, the
    row is priced at the current purchase price, falling back to the sale price.
    """
    quantity = parse_quantity(quantity)
    unit_cost_cents = parse_price(unit_cost_cents, key="unit_cost_cents")
    note = parse_note(note)

    def _op():
        begin_write()
        product = load_products(business_id, [product_id], lock=True)[product_id]

        if unit_cost_cents is not None:
            product.purchase_price_cents = unit_cost_cents
            price = unit_cost_cents
        elif product.purchase_price_cents is not None:
            price = product.purchase_price_cents
        else:
            price = product.price_cents

        tx = post_movement(
            business_id=business_id,
            product=product,
            tx_type="PURCHASE",
            quantity=quantity,
            unit_price_cents=price,
            note=note,
        )
        db.session.flush()
        db.session.commit()
        return product, tx

    product, tx = run_with_retry(_op)
    current_app.logger.info(
        "Stock replenished business=%s product=%s quantity=%s transaction=%s",
        business_id, product.id, quantity, tx.id,
    )
    return product, tx


def list_transactions(
    *,
    business_id: int,
    product_id: int | None = None,
    tx_type: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    invoice_status: str | None = None,
    limit: int | None = None,
) -> list[StockTransaction]:
    """
    Ledger rows for a business, newest first.

    invoice_status filters on the linked invoice; "NO_INVOICE" selects rows
    with no invoice at all and "CANCELLED" rows of voided invoices. PAID,
    UNPAID and PENDING only match live invoices.
    """
    q = db.session.query(StockTransaction).filter(StockTransaction.business_id == business_id)

    if product_id is not None:
        q = q.filter(StockTransaction.product_id == product_id)
    if tx_type is not None:
        q = q.filter(StockTransaction.type == tx_type)
    if date_from is not None:
        q = q.filter(StockTransaction.created_at >= date_from)
    if date_to is not None:
        q = q.filter(StockTransaction.created_at <= date_to)
    if invoice_status == "NO_INVOICE":
        q = q.filter(StockTransaction.invoice_id.is_(None))
    elif invoice_status == CANCELLED_STATUS:
        q = q.join(Invoice, Invoice.id == StockTransaction.invoice_id).filter(Invoice.voided_at.isnot(None))
    elif invoice_status is not None:
        q = q.join(Invoice, Invoice.id == StockTransaction.invoice_id).filter(
            Invoice.status == invoice_status, Invoice.voided_at.is_(None)
        )

    q = q.order_by(StockTransaction.created_at.desc(), StockTransaction.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()


def get_transaction_invoice_status(*, business_id: int, transaction_id: int) -> dict:
    tx = get_owned(StockTransaction, transaction_id, business_id, label="Transaction")
    if tx.invoice is None:
        return {"status": "NO_INVOICE"}
    if tx.invoice.voided_at is not None:
        return {"status": CANCELLED_STATUS, "invoice_number": tx.invoice.invoice_number}
    return {"status": tx.invoice.status, "invoice_number": tx.invoice.invoice_number}
