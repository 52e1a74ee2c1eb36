# Overview: Error-to-response mapping and query-string helpers shared by the API blueprints.

from __future__ import annotations

from datetime import datetime

from flask import jsonify, request

from ..services.stock_service import InsufficientStockError
from ..services.tenant_service import TenantAccessError
from ..time_utils import end_of_day, parse_iso_datetime
from ..validation import ConflictError, NotFoundError, ValidationError, coerce_int

# Expected failures; anything else is logged and answered with a 500
DOMAIN_ERRORS = (
    ValidationError,
    NotFoundError,
    ConflictError,
    InsufficientStockError,
    TenantAccessError,
)


def error_response(e: Exception):
    if isinstance(e, InsufficientStockError):
        return jsonify({"error": str(e), "details": e.details}), 409
    if isinstance(e, NotFoundError):
        return jsonify({"error": e.args[0] if e.args else "Not found"}), 404
    if isinstance(e, ConflictError):
        return jsonify({"error": str(e)}), 409
    if isinstance(e, TenantAccessError):
        return jsonify({"error": str(e)}), 401
    return jsonify({"error": str(e)}), 400


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def optional_int(data: dict, key: str) -> int | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    return coerce_int(key, value)


def arg_datetime(name: str, *, inclusive_end: bool = False) -> datetime | None:
    """
    Parse an ISO-8601 query parameter.

    With inclusive_end, a bare date (YYYY-MM-DD) covers that whole day.
    """
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        dt = parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date or datetime")
    if inclusive_end and len(raw.strip()) == 10:
        dt = end_of_day(dt)
    return dt


def arg_bool(name: str, default: bool = False) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}
