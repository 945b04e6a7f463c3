# backend/posengine/routes/system.py
"""
System health and tenant endpoints.

Health probes every configured tenant store with a trivial query so a
broken bind shows up per tenant instead of as one opaque failure.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..services.tenant_service import bind_key_for, list_tenants
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_tenant_store_health(code: str) -> dict:
    start_time = time.time()
    try:
        with db.engines[bind_key_for(code)].connect() as conn:
            conn.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Health check failed for tenant %s", code)
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: every tenant store answers
    - 503: at least one store is unhealthy
    """
    start_time = time.time()
    checks = {code: check_tenant_store_health(code) for code in list_tenants()}
    unhealthy = any(check["status"] == "unhealthy" for check in checks.values())

    response = {
        "status": "unhealthy" if unhealthy else "healthy",
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "tenants": checks,
    }
    return response, 503 if unhealthy else 200


@system_bp.get("/api/tenants")
def tenants():
    return {"tenants": list_tenants()}
