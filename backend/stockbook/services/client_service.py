# Overview: Client records; invoices point at them, so deletion is guarded.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import Client, Invoice
from ..validation import ConflictError
from .pagination import paginate
from .tenant_service import get_owned

CLIENT_MUTABLE_FIELDS = {"name", "email", "phone", "address"}


def apply_client_patch(c: Client, patch: dict) -> None:
    for k, v in patch.items():
        if k not in CLIENT_MUTABLE_FIELDS:
            continue
        setattr(c, k, v)


def _invoice_counts(business_id: int, client_ids) -> dict[int, int]:
    if not client_ids:
        return {}
    return dict(
        db.session.query(Invoice.client_id, func.count(Invoice.id))
        .filter(Invoice.business_id == business_id, Invoice.client_id.in_(client_ids))
        .group_by(Invoice.client_id)
        .all()
    )


def list_clients(*, business_id: int, page: int | None = None, per_page: int | None = None) -> dict:
    q = (
        db.session.query(Client)
        .filter(Client.business_id == business_id)
        .order_by(Client.name.asc(), Client.id.asc())
    )
    result = paginate(q, page, per_page, serialize=lambda c: c)
    counts = _invoice_counts(business_id, [c.id for c in result["items"]])
    result["items"] = [c.to_dict(invoice_count=counts.get(c.id, 0)) for c in result["items"]]
    return result


def search_clients(*, business_id: int, query: str, limit: int = 20) -> list[dict]:
    """Case-insensitive substring match on name, email, phone or address."""
    term = (query or "").strip()
    if not term:
        return []
    pattern = f"%{term}%"
    clients = (
        db.session.query(Client)
        .filter(
            Client.business_id == business_id,
            or_(
                Client.name.ilike(pattern),
                Client.email.ilike(pattern),
                Client.phone.ilike(pattern),
                Client.address.ilike(pattern),
            ),
        )
        .order_by(Client.name.asc(), Client.id.asc())
        .limit(limit)
        .all()
    )
    return [c.to_dict() for c in clients]


def get_client(*, business_id: int, client_id: int) -> dict:
    c = get_owned(Client, client_id, business_id)
    return c.to_dict(invoice_count=_invoice_counts(business_id, [c.id]).get(c.id, 0))


def create_client(*, business_id: int, patch: dict) -> Client:
    c = Client(business_id=business_id)
    apply_client_patch(c, patch)
    db.session.add(c)
    db.session.commit()

    current_app.logger.info("Created client business=%s id=%s", business_id, c.id)
    return c


def update_client(*, business_id: int, client_id: int, patch: dict) -> Client:
    c = get_owned(Client, client_id, business_id)
    apply_client_patch(c, patch)
    db.session.commit()
    return c


def delete_client(*, business_id: int, client_id: int) -> None:
    """Refused while the client has invoices, cancelled ones included."""
    c = get_owned(Client, client_id, business_id)

    count = _invoice_counts(business_id, [c.id]).get(c.id, 0)
    if count:
        raise ConflictError(f"Client has {count} invoice(s) and cannot be deleted")

    db.session.delete(c)
    db.session.commit()
    current_app.logger.info("Deleted client business=%s id=%s", business_id, client_id)
