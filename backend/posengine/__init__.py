# backend/posengine/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import TENANT_BIND_PREFIX, db, migrate


def _tenant_binds(app: Flask) -> dict:
    """
    Each tenant store becomes a bind named "tenant:<code>". With no stores
    configured the default database doubles as tenant "default".
    """
    stores = dict(app.config.get("TENANT_STORES") or {})
    if not stores:
        stores = {"default": app.config["SQLALCHEMY_DATABASE_URI"]}
    binds = dict(app.config.get("SQLALCHEMY_BINDS") or {})
    for code, uri in stores.items():
        binds[f"{TENANT_BIND_PREFIX}{code.strip().lower()}"] = uri
    return binds


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Engines are created by init_app, so overrides must land first
    if config_overrides:
        app.config.update(config_overrides)
    app.config["SQLALCHEMY_BINDS"] = _tenant_binds(app)

    logging.basicConfig(level=app.config.get("LOG_LEVEL", "INFO"))
    logging.getLogger("posengine").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.sales import sales_bp
    from .routes.quotations import quotations_bp
    from .routes.laybys import laybys_bp
    from .routes.shifts import shifts_bp
    from .routes.day_ends import day_ends_bp
    from .routes.inventory import inventory_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(quotations_bp)
    app.register_blueprint(laybys_bp)
    app.register_blueprint(shifts_bp)
    app.register_blueprint(day_ends_bp)
    app.register_blueprint(inventory_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = set(app.config.get("CORS_ALLOWED_ORIGINS") or ())
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-Tenant-ID, X-Actor-Id"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
