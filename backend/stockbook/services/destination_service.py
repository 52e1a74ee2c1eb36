from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Destination
from ..validation import ConflictError


def list_destinations(*, business_id: int) -> list[Destination]:
    return (
        db.session.query(Destination)
        .filter(Destination.business_id == business_id)
        .order_by(Destination.name.asc(), Destination.id.asc())
        .all()
    )


def create_destination(*, business_id: int, patch: dict) -> Destination:
    exists = (
        db.session.query(Destination.id)
        .filter(
            Destination.business_id == business_id,
            func.lower(Destination.name) == patch["name"].lower(),
        )
        .first()
    )
    if exists:
        raise ConflictError(f"Destination '{patch['name']}' already exists")

    d = Destination(business_id=business_id, name=patch["name"], description=patch.get("description"))
    db.session.add(d)
    db.session.commit()

    current_app.logger.info("Created destination business=%s id=%s", business_id, d.id)
    return d
