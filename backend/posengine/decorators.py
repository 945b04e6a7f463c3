# Overview: Request decorators for API routes (tenant scoping, caller identity).

from functools import wraps
from flask import request, jsonify, g

from .services.tenant_service import tenant_exists, tenant_scope

TENANT_HEADER = "X-Tenant-ID"
ACTOR_HEADER = "X-Actor-Id"


def _parse_actor_id() -> int | None:
    raw = request.headers.get(ACTOR_HEADER)
    if raw is None or not raw.strip():
        return None
    raw = raw.strip()
    if not raw.isdigit():
        raise ValueError(raw)
    return int(raw)


def require_tenant(f):
    """
    Scope the request to the tenant named in the X-Tenant-ID header.

    Sets:
    - g.tenant_bind_key (via tenant_scope): routes the session to the tenant store
    - g.actor_id: caller id from X-Actor-Id, or None

    Authentication happens upstream; the actor id is only used for
    attribution fields (created_by, approved_by, ...).

    Returns 400 if the header is missing or the actor id is malformed,
    404 if the tenant is unknown.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        code = request.headers.get(TENANT_HEADER)
        if not code:
            return jsonify({"error": f"{TENANT_HEADER} header required"}), 400
        if not tenant_exists(code):
            return jsonify({"error": "Tenant not found", "code": "NOT_FOUND"}), 404

        try:
            actor_id = _parse_actor_id()
        except ValueError:
            return jsonify({"error": f"{ACTOR_HEADER} must be an integer"}), 400

        with tenant_scope(code):
            g.actor_id = actor_id
            return f(*args, **kwargs)

    return decorated_function


def require_actor(f):
    """Mutating endpoints need a caller id for attribution."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if getattr(g, "actor_id", None) is None:
            return jsonify({"error": f"{ACTOR_HEADER} header required"}), 400
        return f(*args, **kwargs)

    return decorated_function
