"""Alembic environment for the tasks schema in a Supabase Postgres database.

Only the ``public`` tables declared in ``models.database`` are managed here.
Supabase owns the ``auth``/``storage``/``realtime`` schemas, so autogenerate
must never emit DDL for them.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config

from config import get_settings
from db.connection import async_database_url
from models.database import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

settings = get_settings()
if not settings.database_url:
    raise RuntimeError("DATABASE_URL is not set; migrations need a direct Postgres connection")

# Supabase hands out postgresql:// URLs; migrations run through asyncpg
config.set_main_option("sqlalchemy.url", async_database_url(settings.database_url))

target_metadata = Base.metadata
MANAGED_TABLES = set(target_metadata.tables)


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    """Skip anything Supabase manages: other schemas and tables we don't declare."""
    if type_ == "table":
        return obj.schema in (None, "public") and name in MANAGED_TABLES
    table = getattr(obj, "table", None)
    if table is not None:
        return table.schema in (None, "public") and table.name in MANAGED_TABLES
    return True


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        include_schemas=False,
        include_object=include_object,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit the migration SQL, e.g. to paste into the Supabase SQL editor."""
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    _configure(connection=connection, compare_type=True)
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
        # Supabase's pooler (pgbouncer, transaction mode) breaks prepared statements
        connect_args={"statement_cache_size": 0},
    )
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
