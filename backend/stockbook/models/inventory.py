from __future__ import annotations

from ..extensions import db
from stockbook.time_utils import to_utc_z, utcnow

TRANSACTION_TYPES = ("PURCHASE", "SALE", "RETURN")


class Product(db.Model):
    """
    Product master data plus the current stock record.

    STOCK INVARIANT:
    - quantity is never negative (CHECK constraint as the last line of defence)
    - quantity is only written by stock_service / invoice_service, always
      together with a StockTransaction row in the same DB transaction
    - product create/update never touch quantity

    CONCURRENCY: version_id is SQLAlchemy's optimistic lock column. A flush
    against a row that changed underneath raises StaleDataError, which
    run_with_retry turns into a fresh attempt.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        db.CheckConstraint("price_cents >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_business_name", "business_id", "name"),
        db.Index("ix_products_business_reference", "business_id", "reference"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    sub_category_id = db.Column(db.Integer, db.ForeignKey("sub_categories.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    reference = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(32), nullable=False, default="")
    image_url = db.Column(db.String(512), nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    purchase_price_cents = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    sub_category = db.relationship("SubCategory", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "sub_category_id": self.sub_category_id,
            "sub_category_name": self.sub_category.name if self.sub_category else None,
            "name": self.name,
            "description": self.description,
            "reference": self.reference,
            "unit": self.unit,
            "image_url": self.image_url,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "purchase_price_cents": self.purchase_price_cents,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockTransaction(db.Model):
    """
    Append-only stock ledger.

    - PURCHASE: stock in (replenishment)
    - SALE: stock out, optionally linked to an invoice and/or a destination
    - RETURN: stock back in; when it compensates a SALE, reverses_transaction_id
      points at that SALE and the pair nets to zero on the invoice

    Rows are never updated or deleted.
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_tx_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_stock_tx_price_non_negative"),
        db.Index("ix_stock_tx_business_created", "business_id", "created_at"),
        db.Index("ix_stock_tx_business_type_created", "business_id", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    destination_id = db.Column(db.Integer, db.ForeignKey("destinations.id"), nullable=True, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)
    reverses_transaction_id = db.Column(
        db.Integer, db.ForeignKey("stock_transactions.id"), nullable=True, unique=True
    )

    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("transactions", lazy=True))
    destination = db.relationship("Destination")
    invoice = db.relationship("Invoice", backref=db.backref("transactions", lazy=True, order_by="StockTransaction.id"))

    def __repr__(self) -> str:
        return f"<StockTransaction id={self.id} type={self.type} product_id={self.product_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        product = self.product
        invoice = self.invoice
        return {
            "id": self.id,
            "business_id": self.business_id,
            "product_id": self.product_id,
            "product_name": product.name if product else None,
            "unit": product.unit if product else None,
            "category_name": product.category.name if product and product.category else None,
            "type": self.type,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
            "destination_id": self.destination_id,
            "destination_name": self.destination.name if self.destination else None,
            "invoice_id": self.invoice_id,
            "invoice_number": invoice.invoice_number if invoice else None,
            "invoice_status": invoice.status if invoice else None,
            "reverses_transaction_id": self.reverses_transaction_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }


class Destination(db.Model):
    """Label for where outgoing stock goes (department, site, external recipient)."""
    __tablename__ = "destinations"
    __table_args__ = (
        db.UniqueConstraint("business_id", "name", name="uq_destinations_business_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
