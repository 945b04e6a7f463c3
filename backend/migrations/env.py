"""
Alembic environment for tenant stores.

Every tenant store carries the same schema, so each migration runs once per
configured "tenant:<code>" bind. Limit a run to one tenant with
``flask db upgrade -x tenant=acme``.
"""

import logging
from logging.config import fileConfig

from alembic import context
from flask import current_app

config = context.config
fileConfig(config.config_file_name)
logger = logging.getLogger("alembic.env")

TENANT_BIND_PREFIX = "tenant:"


def get_metadata():
    return current_app.extensions["migrate"].db.metadata


def tenant_binds() -> dict:
    engines = current_app.extensions["migrate"].db.engines
    wanted = context.get_x_argument(as_dictionary=True).get("tenant")
    binds = {
        key[len(TENANT_BIND_PREFIX):]: engine
        for key, engine in engines.items()
        if isinstance(key, str) and key.startswith(TENANT_BIND_PREFIX)
    }
    if wanted:
        binds = {code: engine for code, engine in binds.items() if code == wanted.lower()}
        if not binds:
            raise RuntimeError(f"Unknown tenant: {wanted}")
    return binds


def run_migrations_offline():
    """Emit SQL for each tenant store instead of executing it."""
    for code, engine in tenant_binds().items():
        logger.info("Generating SQL for tenant %s", code)
        context.configure(
            url=str(engine.url).replace("%", "%%"),
            target_metadata=get_metadata(),
            literal_binds=True,
            render_as_batch=True,
        )
        with context.begin_transaction():
            context.run_migrations()


def run_migrations_online():
    conf_args = current_app.extensions["migrate"].configure_args
    conf_args.setdefault("render_as_batch", True)

    for code, engine in tenant_binds().items():
        logger.info("Migrating tenant %s", code)
        with engine.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=get_metadata(),
                **conf_args,
            )
            with context.begin_transaction():
                context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
