from __future__ import annotations
from datetime import datetime
from stockbook.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

# 100% expressed in basis points
MAX_TAX_RATE_BPS = 10_000

# Matches the String(255) note / void_reason columns
MAX_NOTE_LENGTH = 255


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (duplicate name, referenced row, ...)."""


class NotFoundError(LookupError):
    """404-level: unknown id, or an id that belongs to another business."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion: no bools, floats, decimals or scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - the policy allowlist (writable_fields)
    - required_on_create (if partial=False)

    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def blank_to_none(patch: dict, *fields: str) -> dict:
    """Optional text fields are stored as NULL rather than ''."""
    for f in fields:
        if f in patch and patch[f] == "":
            patch[f] = None
    return patch


def _check_price(name: str, value) -> None:
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{name} must be >= 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_PRICE_CENTS}")


def enforce_rules_product(patch: dict) -> None:
    _check_price("price_cents", patch.get("price_cents"))
    _check_price("purchase_price_cents", patch.get("purchase_price_cents"))


def enforce_rules_tax_rate(value: int | None) -> None:
    if value is None:
        return
    if value < 0 or value > MAX_TAX_RATE_BPS:
        raise ValidationError(f"tax_rate_bps must be between 0 and {MAX_TAX_RATE_BPS}")


def parse_quantity(value: Any, key: str = "quantity") -> int:
    """Quantities on every stock movement are integers > 0."""
    if value is None:
        raise ValidationError(f"{key} is required")
    qty = coerce_int(key, value)
    if qty <= 0:
        raise ValidationError(f"{key} must be > 0")
    return qty


def parse_note(value: Any, key: str = "note") -> str | None:
    """Optional free text (notes, void reasons): stripped, '' -> None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    text = value.strip()
    if len(text) > MAX_NOTE_LENGTH:
        raise ValidationError(f"{key} exceeds max length {MAX_NOTE_LENGTH}")
    return text or None


def parse_price(value: Any, key: str = "unit_price_cents") -> int | None:
    if value is None:
        return None
    price = coerce_int(key, value)
    _check_price(key, price)
    return price


def parse_line_items(raw: Any, *, key: str = "items", with_price: bool = False) -> list[dict]:
    """
    Normalize a list of {product_id, quantity[, unit_price_cents]} dicts.
    key names the payload field in error messages ("items" or "lines").

    Raises ValidationError on an empty list or on any malformed line; nothing
    is written before this succeeds.
    """
    if not isinstance(raw, list) or not raw:
        raise ValidationError(f"{key} must be a non-empty list")

    lines = []
    for i, item in enumerate(raw, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"{key} {i} must be an object")
        if item.get("product_id") is None:
            raise ValidationError(f"{key} {i}: product_id is required")
        line = {
            "product_id": coerce_int(f"{key} {i}: product_id", item["product_id"]),
            "quantity": parse_quantity(item.get("quantity"), key=f"{key} {i}: quantity"),
        }
        if with_price:
            line["unit_price_cents"] = parse_price(
                item.get("unit_price_cents"), key=f"{key} {i}: unit_price_cents"
            )
        lines.append(line)
    return lines
