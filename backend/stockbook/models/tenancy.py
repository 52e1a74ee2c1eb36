from __future__ import annotations

from ..extensions import db
from stockbook.time_utils import to_utc_z


class Business(db.Model):
    """
    Tenant root: every product, client, invoice and ledger row belongs to
    exactly one Business.

    The identity provider hands us an authenticated email; that email is the
    lookup key for the business. It is resolved to a business_id once per
    request (see decorators.require_tenant) and only the id travels through
    the service layer.
    """
    __tablename__ = "businesses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    address = db.Column(db.Text, nullable=True)

    # Basis points (2000 = 20%), applied to new invoices unless overridden
    default_tax_rate_bps = db.Column(db.Integer, nullable=False, default=2000)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Business id={self.id} email={self.email!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "address": self.address,
            "default_tax_rate_bps": self.default_tax_rate_bps,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
