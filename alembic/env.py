"""Alembic environment.

Migrations run against the service's own settings: DATABASE_URL and, when
set, DB_SCHEMA, which also holds the alembic_version table.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

# Registers models with Base.metadata for autogenerate
import urlredir.models  # noqa: F401
from urlredir.config import Settings
from urlredir.db.session import Base

settings = Settings()
schema = settings.db_schema or None

if context.config.config_file_name is not None:
    fileConfig(context.config.config_file_name)


def _configure(**kwargs: object) -> None:
    context.configure(target_metadata=Base.metadata, version_table_schema=schema, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection: Connection) -> None:
    if schema:
        connection = connection.execution_options(schema_translate_map={None: schema})
    _configure(connection=connection)


async def _migrate_online() -> None:
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    # alembic upgrade head --sql > migration.sql
    _configure(url=settings.database_url, literal_binds=True, dialect_opts={"paramstyle": "named"})
else:
    asyncio.run(_migrate_online())
