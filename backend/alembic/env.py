"""
Alembic Migration Environment
==============================

What:  Runs Alembic against the async SQLAlchemy engine from notewise.config.
Who:   `alembic -c backend/alembic.ini upgrade head` at deploy time.

Only tables owned by this service are migrated. `notes` and `profiles` belong
to the mobile app's schema; their models carry `info={"managed": False}` and
include_object() hides them from --autogenerate.
"""

import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config
from alembic import context

from notewise.config import settings
from notewise.database import Base

# Register every model with Base.metadata
from notewise.models.job_log import CronJobLog  # noqa: F401
from notewise.models.note import Note, Profile  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

config.set_main_option("sqlalchemy.url", settings.database_url)


def include_object(obj, name, type_, reflected, compare_to):
    """Skips tables (and their columns/indexes) marked as not managed here."""
    table = obj if type_ == "table" else getattr(obj, "table", None)
    if table is not None and table.info.get("managed") is False:
        return False
    # Reflected tables with no model (e.g. the app's other tables) are not ours.
    if type_ == "table" and reflected and compare_to is None:
        return False
    return True


def run_migrations_offline() -> None:
    """Emits SQL to stdout without connecting to the database."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        include_object=include_object,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection):
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        include_object=include_object,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
