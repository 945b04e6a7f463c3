# backend/posengine/config.py
from __future__ import annotations
import os


def parse_tenant_stores(raw: str | None) -> dict[str, str]:
    """
    Parse "code=uri,code=uri" into {code: uri}.

    Blank entries are ignored; codes are lower-cased.
    """
    stores: dict[str, str] = {}
    if not raw:
        return stores
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        code, sep, uri = chunk.partition("=")
        if not sep or not code.strip() or not uri.strip():
            raise ValueError(f"Invalid TENANT_STORES entry: {chunk!r}")
        stores[code.strip().lower()] = uri.strip()
    return stores


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Default store, also used as the "default" tenant when TENANT_STORES is empty
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///posengine.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Per-tenant stores: "acme=sqlite:///acme.sqlite3,beta=postgresql://..."
    TENANT_STORES = parse_tenant_stores(os.environ.get("TENANT_STORES"))

    DAY_END_EDIT_WINDOW_HOURS = int(os.environ.get("DAY_END_EDIT_WINDOW_HOURS", "24"))
    PAYMENT_TOLERANCE_CENTS = int(os.environ.get("PAYMENT_TOLERANCE_CENTS", "1"))
    DEFAULT_QUOTATION_VALIDITY_DAYS = int(os.environ.get("DEFAULT_QUOTATION_VALIDITY_DAYS", "30"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Browser clients allowed to call the API (comma separated)
    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get("CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if origin.strip()
    ]
