# Overview: Flask extension instances for database and migrations.

from flask import g, has_app_context
from flask_sqlalchemy import SQLAlchemy
from flask_sqlalchemy.session import Session
from flask_migrate import Migrate

TENANT_BIND_PREFIX = "tenant:"


class TenantSession(Session):
    """
    Session that routes every statement to the engine of the active tenant.

    The active tenant is set on ``g.tenant_bind_key`` by
    ``tenant_service.tenant_scope``. Outside a tenant scope the regular
    Flask-SQLAlchemy bind resolution applies.
    """

    def get_bind(self, mapper=None, clause=None, bind=None, **kwargs):
        if bind is None and has_app_context():
            key = g.get("tenant_bind_key")
            if key is not None:
                return self._db.engines[key]
        return super().get_bind(mapper=mapper, clause=clause, bind=bind, **kwargs)


db = SQLAlchemy(session_options={"class_": TenantSession})
migrate = Migrate()
