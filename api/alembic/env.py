from __future__ import annotations

import logging
import sys
import time
from logging.config import fileConfig
from pathlib import Path

from sqlalchemy import Connection, create_engine, text

# Ensure parent directory (api/) is in Python path for module imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Import models so they register with Base.metadata
import models  # noqa: F401
from alembic import context
from core.config import get_settings
from core.database import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# Serialises concurrent `upgrade head` runs from several replicas
_ADVISORY_LOCK_KEY = 581204467

# Lock acquisition timeout (seconds)
_LOCK_TIMEOUT_SECONDS = 120

logger = logging.getLogger("alembic")


def _get_sync_database_url() -> str:
    """Swap async drivers for their synchronous counterparts.

    Migrations run outside the app's event loop, so asyncpg becomes psycopg2
    and aiosqlite becomes the stdlib sqlite3 driver.
    """
    url = get_settings().database_url
    return url.replace("+asyncpg", "+psycopg2").replace("+aiosqlite", "")


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=_get_sync_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def _acquire_advisory_lock(connection: Connection) -> None:
    start_time = time.time()
    while time.time() - start_time < _LOCK_TIMEOUT_SECONDS:
        acquired = connection.execute(
            text("SELECT pg_try_advisory_lock(:key)"),
            {"key": _ADVISORY_LOCK_KEY},
        ).scalar()
        if acquired:
            connection.commit()
            logger.info("Acquired migration advisory lock")
            return
        logger.debug("Waiting for migration lock...")
        time.sleep(2)

    raise RuntimeError(
        f"Failed to acquire migration lock within {_LOCK_TIMEOUT_SECONDS}s. "
        "Another process may be stuck holding the lock."
    )


def _run_migrations(connection: Connection) -> None:
    use_lock = connection.dialect.name == "postgresql"
    if use_lock:
        _acquire_advisory_lock(connection)

    try:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=True,
        )
        with context.begin_transaction():
            context.run_migrations()
    finally:
        if use_lock:
            connection.execute(
                text("SELECT pg_advisory_unlock(:key)"),
                {"key": _ADVISORY_LOCK_KEY},
            )
            logger.info("Released migration advisory lock")


def run_migrations_online() -> None:
    engine = create_engine(_get_sync_database_url())
    with engine.connect() as connection:
        _run_migrations(connection)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
