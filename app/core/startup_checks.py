from __future__ import annotations

import logging
from pathlib import Path

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from app.core.config import (
    ADMIN_SESSION_SECRET,
    CART_SESSION_SECRET,
    DATABASE_URL,
    IS_DEV,
    IS_PROD,
    IS_TEST,
    JWT_SECRET_KEY,
)

logger = logging.getLogger(__name__)
STARTUP_PREFIX = "[STARTUP]"


def validate_database_environment() -> None:
    if IS_PROD and DATABASE_URL.startswith("sqlite"):
        logger.critical("%s SQLite is forbidden in production", STARTUP_PREFIX)
        raise RuntimeError("SQLite is forbidden in production environment")


def validate_secrets() -> None:
    missing = [
        name
        for name, value in (
            ("JWT_SECRET_KEY", JWT_SECRET_KEY),
            ("ADMIN_SESSION_SECRET", ADMIN_SESSION_SECRET),
            ("CART_SESSION_SECRET", CART_SESSION_SECRET),
        )
        if not value
    ]
    if missing:
        logger.critical("%s missing secrets=%s", STARTUP_PREFIX, ",".join(missing))
        raise RuntimeError("Required secrets are not configured")


def ensure_migrations_applied(*, engine: Engine, alembic_config_path: Path) -> None:
    if IS_DEV or IS_TEST:
        logger.info("%s skipped migration check env=dev/test", STARTUP_PREFIX)
        return

    if not alembic_config_path.exists():
        logger.critical("%s alembic config not found path=%s", STARTUP_PREFIX, alembic_config_path)
        raise RuntimeError("alembic config not found")

    alembic_cfg = Config(str(alembic_config_path))
    script_directory = ScriptDirectory.from_config(alembic_cfg)
    expected_heads = set(script_directory.get_heads())

    with engine.connect() as connection:
        inspector = inspect(connection)
        if "alembic_version" not in inspector.get_table_names():
            logger.critical("%s alembic_version table missing", STARTUP_PREFIX)
            raise RuntimeError("Database has no migration state")

        current_heads = set(MigrationContext.configure(connection).get_current_heads())

    if current_heads != expected_heads:
        logger.critical(
            "%s pending migration detected current=%s expected=%s",
            STARTUP_PREFIX,
            sorted(current_heads),
            sorted(expected_heads),
        )
        raise RuntimeError("Pending migrations detected")

    logger.info("%s migration state verified", STARTUP_PREFIX)
