from __future__ import annotations

from ..extensions import db
from stockbook.time_utils import to_utc_z


class Client(db.Model):
    """
    Invoiced customer.

    Address is required because it is printed on every invoice. A client with
    invoices cannot be deleted (see client_service.delete_client).
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_business_name", "business_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self, invoice_count: int | None = None) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if invoice_count is not None:
            data["invoice_count"] = invoice_count
        return data
