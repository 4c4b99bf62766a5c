"""
Alembic environment for the Cove matching schema.

Invoked only by the Alembic CLI, from apps/cove: ``alembic upgrade head``.
The connection URL always comes from cove.database.db so migrations hit the
same database as the API.
"""

from logging.config import fileConfig
import asyncio
import logging
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config
from alembic import context

from cove.database.db import Base, DATABASE_URL
from cove.database import models  # noqa: F401

logger = logging.getLogger(__name__)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _redacted_url() -> str:
    """Host/dbname part of DATABASE_URL, without credentials."""
    return DATABASE_URL.rsplit("@", 1)[-1] if "@" in DATABASE_URL else DATABASE_URL.split("://")[0]


def _apply(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def _migrate() -> None:
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = DATABASE_URL
    engine = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_apply)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    # Emit SQL only
    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()
else:
    logger.info(f"Migrating matching schema on {_redacted_url()}")
    try:
        asyncio.run(_migrate())
    except Exception as e:
        logger.error(f"Matching schema migration failed: {e}", exc_info=True)
        raise
    logger.info("Matching schema is up to date")
