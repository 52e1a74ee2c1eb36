"""
Invoice Service - invoices are built from stock ledger rows

WHY: An invoice and the stock it takes out must never disagree. Creating an
invoice, adding a line, editing lines and cancelling are each one DB
transaction that touches products, ledger rows and the invoice header
together.

TOTALS: the header's subtotal/tax/total are recomputed from the ledger after
every change (see _recompute_totals); values sent by the client are ignored.

STATUS TRANSITIONS:
    UNPAID  -> PAID, PENDING
    PENDING -> PAID, UNPAID
    PAID    -> UNPAID
Setting the current status again is a no-op. Voided invoices are frozen.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import case, func

from ..extensions import db
from ..models import Business, Client, Invoice, StockTransaction, INVOICE_STATUSES
from ..validation import (
    ValidationError,
    ConflictError,
    NotFoundError,
    coerce_int,
    enforce_rules_tax_rate,
    parse_line_items,
    parse_note,
    parse_price,
    parse_quantity,
)
from stockbook.time_utils import utcnow
from .concurrency import begin_write, run_with_retry
from .document_service import next_document_number
from .pagination import paginate
from .stock_service import (
    required_totals,
    ensure_available,
    ensure_destination,
    load_products,
    post_movement,
)
from .tenant_service import INVOICE_DOCUMENT_TYPE, get_owned

ALLOWED_TRANSITIONS = {
    "UNPAID": {"PAID", "PENDING"},
    "PENDING": {"PAID", "UNPAID"},
    "PAID": {"UNPAID"},
}

MAX_INVOICE_NUMBER_LENGTH = 64


def compute_tax(subtotal_cents: int, tax_rate_bps: int, tax_enabled: bool) -> int:
    """Tax in cents, rounded half-up."""
    if not tax_enabled:
        return 0
    return (subtotal_cents * tax_rate_bps + 5000) // 10000


def _parse_status(status) -> str:
    if status not in INVOICE_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(INVOICE_STATUSES)}")
    return status


def _parse_tax_rate(value) -> int | None:
    if value is None:
        return None
    rate = coerce_int("tax_rate_bps", value)
    enforce_rules_tax_rate(rate)
    return rate


def _parse_invoice_number(value) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("invoice_number must be a string")
    number = value.strip()
    if len(number) > MAX_INVOICE_NUMBER_LENGTH:
        raise ValidationError(f"invoice_number exceeds max length {MAX_INVOICE_NUMBER_LENGTH}")
    return number or None


def _parse_tax_enabled(value) -> bool:
    if not isinstance(value, bool):
        raise ValidationError("tax_enabled must be a boolean")
    return value


def _check_transition(invoice: Invoice, new_status: str) -> None:
    if new_status == invoice.status:
        return
    if new_status not in ALLOWED_TRANSITIONS.get(invoice.status, set()):
        raise ValidationError(f"Cannot change invoice status from {invoice.status} to {new_status}")


def _ensure_not_voided(invoice: Invoice) -> None:
    if invoice.voided_at is not None:
        raise ValidationError(f"Invoice {invoice.invoice_number} is cancelled")


def _format_number(sequence_value: int) -> str:
    prefix = current_app.config["INVOICE_NUMBER_PREFIX"]
    return f"{prefix}-{utcnow():%Y%m}-{sequence_value:03d}"


def _number_taken(business_id: int, invoice_number: str) -> bool:
    return (
        db.session.query(Invoice.id)
        .filter(Invoice.business_id == business_id, Invoice.invoice_number == invoice_number)
        .first()
        is not None
    )


def _allocate_invoice_number(business_id: int) -> str:
    # Skips values already used by manually numbered invoices
    while True:
        number = _format_number(
            next_document_number(business_id=business_id, document_type=INVOICE_DOCUMENT_TYPE)
        )
        if not _number_taken(business_id, number):
            return number


def _active_sales(invoice_id: int) -> list[StockTransaction]:
    """SALE rows of an invoice that no RETURN has compensated yet."""
    reversed_ids = {
        row[0]
        for row in db.session.query(StockTransaction.reverses_transaction_id)
        .filter(
            StockTransaction.invoice_id == invoice_id,
            StockTransaction.type == "RETURN",
            StockTransaction.reverses_transaction_id.isnot(None),
        )
        .all()
    }
    sales = (
        db.session.query(StockTransaction)
        .filter(StockTransaction.invoice_id == invoice_id, StockTransaction.type == "SALE")
        .order_by(StockTransaction.id.asc())
        .all()
    )
    return [s for s in sales if s.id not in reversed_ids]


def _post_returns(business_id: int, invoice: Invoice, sales: list[StockTransaction], products, note: str) -> None:
    for sale in sales:
        post_movement(
            business_id=business_id,
            product=products[sale.product_id],
            tx_type="RETURN",
            quantity=sale.quantity,
            unit_price_cents=sale.unit_price_cents,
            destination_id=sale.destination_id,
            invoice_id=invoice.id,
            reverses_transaction_id=sale.id,
            note=note,
        )


def _post_sales(business_id: int, invoice: Invoice, lines: list[dict], products, destination_id=None) -> None:
    for line in lines:
        product = products[line["product_id"]]
        price = line.get("unit_price_cents")
        post_movement(
            business_id=business_id,
            product=product,
            tx_type="SALE",
            quantity=line["quantity"],
            unit_price_cents=product.price_cents if price is None else price,
            destination_id=destination_id,
            invoice_id=invoice.id,
        )


def _recompute_totals(invoice: Invoice) -> None:
    """subtotal = sum(SALE) - sum(RETURN) over the invoice's ledger rows."""
    db.session.flush()
    signed = case(
        (StockTransaction.type == "RETURN", -StockTransaction.subtotal_cents),
        else_=StockTransaction.subtotal_cents,
    )
    subtotal = (
        db.session.query(func.coalesce(func.sum(signed), 0))
        .filter(StockTransaction.invoice_id == invoice.id)
        .scalar()
    )
    invoice.subtotal_cents = int(subtotal)
    invoice.tax_cents = compute_tax(invoice.subtotal_cents, invoice.tax_rate_bps, invoice.tax_enabled)
    invoice.total_cents = invoice.subtotal_cents + invoice.tax_cents


def generate_invoice_number(*, business_id: int) -> str:
    """Reserve the next invoice number for a business (FACT-YYYYMM-NNN)."""

    def _op():
        begin_write()
        number = _allocate_invoice_number(business_id)
        db.session.commit()
        return number

    number = run_with_retry(_op)
    current_app.logger.info("Reserved invoice number business=%s number=%s", business_id, number)
    return number


def create_invoice(
    *,
    business_id: int,
    client_id,
    lines,
    tax_rate_bps=None,
    tax_enabled: bool = True,
    status: str = "UNPAID",
    invoice_number: str | None = None,
    destination_id: int | None = None,
) -> Invoice:
    """
    Create an invoice together with its SALE rows and the stock deduction.

    Stock is checked under lock exactly as deduct_stock does; on any shortfall
    nothing is written and no invoice number is consumed.
    """
    lines = parse_line_items(lines, key="lines", with_price=True)
    client_id = coerce_int("client_id", client_id)
    status = _parse_status(status)
    tax_rate_bps = _parse_tax_rate(tax_rate_bps)
    tax_enabled = _parse_tax_enabled(tax_enabled)
    invoice_number = _parse_invoice_number(invoice_number)

    def _op():
        begin_write()
        business = db.session.get(Business, business_id)
        if business is None:
            raise NotFoundError("Business not found")
        get_owned(Client, client_id, business_id)
        ensure_destination(business_id, destination_id)

        required = required_totals(lines)
        products = load_products(business_id, required.keys(), lock=True)
        ensure_available(products, required)

        if invoice_number is not None:
            if _number_taken(business_id, invoice_number):
                raise ConflictError(f"Invoice number {invoice_number} already exists")
            number = invoice_number
        else:
            number = _allocate_invoice_number(business_id)

        invoice = Invoice(
            business_id=business_id,
            client_id=client_id,
            invoice_number=number,
            tax_rate_bps=tax_rate_bps if tax_rate_bps is not None else business.default_tax_rate_bps,
            tax_enabled=tax_enabled,
            status=status,
            issued_at=utcnow(),
        )
        db.session.add(invoice)
        db.session.flush()

        _post_sales(business_id, invoice, lines, products, destination_id=destination_id)
        _recompute_totals(invoice)

        db.session.commit()
        return invoice

    invoice = run_with_retry(_op)
    current_app.logger.info(
        "Created invoice business=%s id=%s number=%s total_cents=%s",
        business_id, invoice.id, invoice.invoice_number, invoice.total_cents,
    )
    return invoice


def update_invoice_status(*, business_id: int, invoice_id: int, new_status) -> Invoice:
    new_status = _parse_status(new_status)

    def _op():
        begin_write()
        invoice = get_owned(Invoice, invoice_id, business_id, lock=True)
        _ensure_not_voided(invoice)
        _check_transition(invoice, new_status)
        changed = invoice.status != new_status
        if changed:
            invoice.status = new_status
        db.session.commit()
        return invoice, changed

    invoice, changed = run_with_retry(_op)
    if changed:
        current_app.logger.info(
            "Invoice status changed business=%s id=%s status=%s", business_id, invoice.id, new_status
        )
    return invoice


def add_invoice_line(
    *,
    business_id: int,
    invoice_id: int,
    product_id,
    quantity,
    unit_price_cents=None,
) -> Invoice:
    """Append one SALE line to an open invoice; stock and totals move with it."""
    product_id = coerce_int("product_id", product_id)
    line = {
        "product_id": product_id,
        "quantity": parse_quantity(quantity),
        "unit_price_cents": parse_price(unit_price_cents),
    }

    def _op():
        begin_write()
        invoice = get_owned(Invoice, invoice_id, business_id, lock=True)
        _ensure_not_voided(invoice)

        products = load_products(business_id, [product_id], lock=True)
        ensure_available(products, {product_id: line["quantity"]})

        _post_sales(business_id, invoice, [line], products)
        _recompute_totals(invoice)
        db.session.commit()
        return invoice

    invoice = run_with_retry(_op)
    current_app.logger.info(
        "Added invoice line business=%s invoice=%s product=%s quantity=%s",
        business_id, invoice.id, product_id, line["quantity"],
    )
    return invoice


def update_invoice(
    *,
    business_id: int,
    invoice_id: int,
    client_id=None,
    lines=None,
    tax_rate_bps=None,
    tax_enabled=None,
    status=None,
    invoice_number=None,
) -> Invoice:
    """
    Edit an open invoice.

    A new invoice_number must not be used by another invoice of the business.

    When lines are given they replace the current ones: every active SALE is
    compensated by a RETURN and the new lines are posted as fresh SALE rows.
    Only the net change per product has to be available in stock.
    """
    if lines is not None:
        lines = parse_line_items(lines, key="lines", with_price=True)
    if client_id is not None:
        client_id = coerce_int("client_id", client_id)
    tax_rate_bps = _parse_tax_rate(tax_rate_bps)
    if tax_enabled is not None:
        tax_enabled = _parse_tax_enabled(tax_enabled)
    if status is not None:
        status = _parse_status(status)
    invoice_number = _parse_invoice_number(invoice_number)

    def _op():
        begin_write()
        invoice = get_owned(Invoice, invoice_id, business_id, lock=True)
        _ensure_not_voided(invoice)

        if invoice_number is not None and invoice_number != invoice.invoice_number:
            if _number_taken(business_id, invoice_number):
                raise ConflictError(f"Invoice number {invoice_number} already exists")
            invoice.invoice_number = invoice_number

        if client_id is not None:
            get_owned(Client, client_id, business_id)
            invoice.client_id = client_id
        if status is not None:
            _check_transition(invoice, status)
            invoice.status = status
        if tax_rate_bps is not None:
            invoice.tax_rate_bps = tax_rate_bps
        if tax_enabled is not None:
            invoice.tax_enabled = tax_enabled

        if lines is not None:
            old_sales = _active_sales(invoice.id)
            old_totals = required_totals(
                [{"product_id": s.product_id, "quantity": s.quantity} for s in old_sales]
            )
            new_totals = required_totals(lines)

            products = load_products(business_id, set(old_totals) | set(new_totals), lock=True)

            net_required = {
                pid: qty - old_totals.get(pid, 0)
                for pid, qty in new_totals.items()
                if qty > old_totals.get(pid, 0)
            }
            ensure_available(products, net_required)

            _post_returns(business_id, invoice, old_sales, products, note="Invoice lines replaced")
            _post_sales(business_id, invoice, lines, products)

        _recompute_totals(invoice)
        db.session.commit()
        return invoice

    invoice = run_with_retry(_op)
    current_app.logger.info("Updated invoice business=%s id=%s", business_id, invoice.id)
    return invoice


def cancel_invoice(*, business_id: int, invoice_id: int, reason: str | None = None) -> Invoice:
    """
    Void an invoice and put its stock back.

    The invoice and its SALE rows stay; each active SALE gets a compensating
    RETURN, so the ledger still explains every past quantity.
    """
    reason = parse_note(reason, key="reason")

    def _op():
        begin_write()
        invoice = get_owned(Invoice, invoice_id, business_id, lock=True)
        if invoice.voided_at is not None:
            raise ValidationError(f"Invoice {invoice.invoice_number} is already cancelled")

        sales = _active_sales(invoice.id)
        if sales:
            products = load_products(business_id, {s.product_id for s in sales}, lock=True)
            _post_returns(business_id, invoice, sales, products, note="Invoice cancelled")

        invoice.voided_at = utcnow()
        invoice.void_reason = reason
        _recompute_totals(invoice)
        db.session.commit()
        return invoice

    invoice = run_with_retry(_op)
    current_app.logger.info(
        "Cancelled invoice business=%s id=%s number=%s", business_id, invoice.id, invoice.invoice_number
    )
    return invoice


def list_invoices(
    *,
    business_id: int,
    status: str | None = None,
    client_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    include_voided: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    q = db.session.query(Invoice).filter(Invoice.business_id == business_id)

    if status is not None:
        q = q.filter(Invoice.status == _parse_status(status))
    if client_id is not None:
        q = q.filter(Invoice.client_id == client_id)
    if date_from is not None:
        q = q.filter(Invoice.issued_at >= date_from)
    if date_to is not None:
        q = q.filter(Invoice.issued_at <= date_to)
    if not include_voided:
        q = q.filter(Invoice.voided_at.is_(None))

    q = q.order_by(Invoice.issued_at.desc(), Invoice.id.desc())
    return paginate(q, page, per_page)


def get_invoice(*, business_id: int, invoice_id: int) -> dict:
    """
    Invoice detail document: header, business, client and lines.

    lines holds only the current SALE rows, so they add up to subtotal_cents;
    history is every ledger row of the invoice, RETURNs included.
    """
    invoice = get_owned(Invoice, invoice_id, business_id)
    business = invoice.business
    data = invoice.to_dict()
    data["business"] = {
        "name": business.name,
        "email": business.email,
        "address": business.address,
    }
    data["client"] = invoice.client.to_dict()
    data["lines"] = [tx.to_dict() for tx in _active_sales(invoice.id)]
    data["history"] = [tx.to_dict() for tx in invoice.transactions]
    return data
