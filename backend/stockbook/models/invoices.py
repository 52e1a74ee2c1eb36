from __future__ import annotations

from ..extensions import db
from stockbook.time_utils import to_utc_z, utcnow

INVOICE_STATUSES = ("PAID", "UNPAID", "PENDING")


class Invoice(db.Model):
    """
    Invoice header. Lines are the StockTransaction rows pointing at it.

    TOTALS INVARIANT:
    - subtotal_cents = sum(SALE.subtotal_cents) - sum(RETURN.subtotal_cents)
      over this invoice's transactions
    - tax_cents = round_half_up(subtotal_cents * tax_rate_bps / 10000) if
      tax_enabled else 0
    - total_cents = subtotal_cents + tax_cents

    Totals are always recomputed from the ledger by invoice_service, never
    taken from the client.

    VOIDING: a cancelled invoice keeps its number and history; voided_at is
    set and its SALE lines are compensated by RETURN rows.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("business_id", "invoice_number", name="uq_invoices_business_number"),
        db.Index("ix_invoices_business_status", "business_id", "status"),
        db.Index("ix_invoices_business_issued", "business_id", "issued_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    invoice_number = db.Column(db.String(64), nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_enabled = db.Column(db.Boolean, nullable=False, default=True)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="UNPAID", index=True)

    issued_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    client = db.relationship("Client", backref=db.backref("invoices", lazy=True))
    business = db.relationship("Business")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number!r} status={self.status}>"

    def active_lines(self) -> list:
        """SALE rows that no RETURN has reversed; the invoice's current lines."""
        reversed_ids = {tx.reverses_transaction_id for tx in self.transactions if tx.type == "RETURN"}
        return [tx for tx in self.transactions if tx.type == "SALE" and tx.id not in reversed_ids]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "invoice_number": self.invoice_number,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else None,
            "subtotal_cents": self.subtotal_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_enabled": self.tax_enabled,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "issued_at": to_utc_z(self.issued_at),
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
            "transaction_count": len(self.active_lines()),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
