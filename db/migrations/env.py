"""Alembic environment for the crm.contacts schema (async engine)."""
import asyncio
from logging.config import fileConfig

from alembic import context

from db.connection import create_engine, database_url, dispose_engine
from db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

APP_SCHEMAS = ("crm",)


def include_name(name, type_, parent_names):
    """Limit autogenerate to the application schema, never public."""
    if type_ == "schema":
        return name in APP_SCHEMAS
    return True


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        include_schemas=True,
        include_name=include_name,
        version_table_schema=APP_SCHEMAS[0],
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit SQL to stdout without connecting."""
    _configure(
        url=database_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    connection.exec_driver_sql(f"CREATE SCHEMA IF NOT EXISTS {APP_SCHEMAS[0]}")
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    engine = create_engine()
    async with engine.begin() as connection:
        await connection.run_sync(do_run_migrations)
    await dispose_engine(engine)


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
