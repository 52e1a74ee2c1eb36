# backend/stockbook/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockbook.sqlite3 unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///stockbook.sqlite3")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Header populated by the identity provider / gateway with the principal's email.
    # The business (tenant) is resolved from it once per request.
    IDENTITY_EMAIL_HEADER = os.environ.get("IDENTITY_EMAIL_HEADER", "X-Authenticated-Email")
    IDENTITY_NAME_HEADER = os.environ.get("IDENTITY_NAME_HEADER", "X-Authenticated-Name")

    # Products at or below this quantity (and above zero) count as low stock
    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "20"))

    # Basis points: 2000 = 20%
    DEFAULT_TAX_RATE_BPS = int(os.environ.get("DEFAULT_TAX_RATE_BPS", "2000"))

    INVOICE_NUMBER_PREFIX = os.environ.get("INVOICE_NUMBER_PREFIX", "FACT")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
