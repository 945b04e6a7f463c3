"""
Tenant store routing.

WHY: Each tenant owns an isolated relational store. Every engine operation
runs inside tenant_scope(code), which points the scoped session at that
tenant's engine, so no query can see another tenant's rows.

USAGE:
    from posengine.services.tenant_service import tenant_scope

    with tenant_scope("acme"):
        sales_service.confirm_sale(sale_id, actor_id)

Tenant stores are declared in config (TENANT_STORES) and become
Flask-SQLAlchemy binds named "tenant:<code>". Creating and retiring tenants
is handled outside this engine; provision_tenant_store only lays down the
schema on a configured store.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager

from flask import current_app, g

from ..extensions import TENANT_BIND_PREFIX, db
from ..errors import NotFoundError

logger = logging.getLogger(__name__)


def normalize_code(code: str | None) -> str:
    return (code or "").strip().lower()


def bind_key_for(code: str) -> str:
    return f"{TENANT_BIND_PREFIX}{normalize_code(code)}"


def list_tenants() -> list[str]:
    binds = current_app.config.get("SQLALCHEMY_BINDS") or {}
    return sorted(key[len(TENANT_BIND_PREFIX):] for key in binds if key.startswith(TENANT_BIND_PREFIX))


def tenant_exists(code: str | None) -> bool:
    return bool(normalize_code(code)) and normalize_code(code) in list_tenants()


def get_current_tenant() -> str | None:
    key = g.get("tenant_bind_key")
    return key[len(TENANT_BIND_PREFIX):] if key else None


@contextmanager
def tenant_scope(code: str):
    """
    Route the session to one tenant's store for the duration of the block.

    The session is discarded on entry and exit so no identity map or
    connection leaks across tenants.
    """
    if not tenant_exists(code):
        raise NotFoundError("Tenant not found", details={"tenant": code})

    previous = g.get("tenant_bind_key")
    db.session.remove()
    g.tenant_bind_key = bind_key_for(code)
    try:
        yield normalize_code(code)
    finally:
        db.session.remove()
        if previous is None:
            g.pop("tenant_bind_key", None)
        else:
            g.tenant_bind_key = previous


def provision_tenant_store(code: str) -> None:
    """Create any missing tables on a configured tenant store (idempotent)."""
    if not tenant_exists(code):
        raise NotFoundError("Tenant not found", details={"tenant": code})
    engine = db.engines[bind_key_for(code)]
    db.metadata.create_all(bind=engine)
    logger.info("Provisioned schema for tenant %s", normalize_code(code))
