"""
Tenant resolution and scoping helpers.

WHY: The identity provider gives us an authenticated email and nothing else.
That email is resolved to a Business exactly once, at the HTTP boundary, and
from there on every service call takes an explicit business_id.

SECURITY INVARIANTS:
1. Every tenant-scoped request has g.business_id set (see require_tenant)
2. Ids from client input are always looked up together with business_id
3. A row owned by another business is reported as "not found", never as
   "forbidden", so existence does not leak across tenants
"""

from __future__ import annotations

from flask import current_app, g

from ..extensions import db
from ..models import Business
from ..validation import NotFoundError
from .concurrency import lock_for_update
from .document_service import ensure_sequence

INVOICE_DOCUMENT_TYPE = "INVOICE"


class TenantAccessError(Exception):
    """Raised when no business can be resolved for the caller."""
    pass


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def get_business_by_email(email: str | None) -> Business | None:
    email = normalize_email(email)
    if not email:
        return None
    return db.session.query(Business).filter_by(email=email).first()


def create_business(
    *,
    email: str,
    name: str,
    address: str | None = None,
    default_tax_rate_bps: int | None = None,
) -> Business:
    email = normalize_email(email)
    if not email:
        raise TenantAccessError("email is required")
    if not name or not name.strip():
        raise TenantAccessError("business name is required")

    business = Business(
        email=email,
        name=name.strip(),
        address=address,
        default_tax_rate_bps=(
            default_tax_rate_bps
            if default_tax_rate_bps is not None
            else current_app.config["DEFAULT_TAX_RATE_BPS"]
        ),
    )
    db.session.add(business)
    db.session.flush()

    # Invoice numbering starts with the business
    ensure_sequence(business.id, INVOICE_DOCUMENT_TYPE)

    db.session.commit()
    current_app.logger.info("Created business id=%s email=%s", business.id, business.email)
    return business


def resolve_business(email: str | None, name: str | None = None) -> Business:
    """
    Map an authenticated email to its Business.

    First contact: if no business exists yet and the identity provider also
    supplied a display name, the business is created on the spot.
    """
    email = normalize_email(email)
    if not email:
        raise TenantAccessError("Authenticated email missing")

    business = get_business_by_email(email)
    if business is not None:
        return business

    if name and name.strip():
        return create_business(email=email, name=name)

    raise TenantAccessError("No business registered for this account")


def get_current_business_id() -> int:
    """
    Current tenant's business_id from Flask g.

    Raises TenantAccessError if require_tenant did not run.
    """
    business_id = getattr(g, "business_id", None)
    if business_id is None:
        raise TenantAccessError("Tenant context not established")
    return business_id


def get_owned(model, object_id: int, business_id: int, *, label: str | None = None, lock: bool = False):
    """
    Fetch a tenant-owned row by id or raise NotFoundError.

    Usage:
        client = get_owned(Client, client_id, business_id)
    """
    query = db.session.query(model).filter(model.id == object_id, model.business_id == business_id)
    if lock:
        query = lock_for_update(query)
    obj = query.first()
    if obj is None:
        raise NotFoundError(f"{label or model.__name__} not found")
    return obj
