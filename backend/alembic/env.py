"""
Alembic Migration Environment

What happens here:
------------------
1. Load application settings (database URL, etc.)
2. Import all models so Alembic can detect them
3. Configure connection to database
4. Run migrations (upgrade/downgrade)

Key Functions:
--------------
- run_migrations_offline(): Generate SQL without connecting to DB
- run_migrations_online(): Connect to DB and apply migrations
"""

import asyncio
import sys
from logging.config import fileConfig
from pathlib import Path

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

# Add backend directory to Python path so we can import the kbsearch package
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from kbsearch.core.config import settings
from kbsearch.db.base import Base

# Import all models so they're registered with Base.metadata
from kbsearch.models import (  # noqa: F401
    Category,
    ContentChunk,
    ContentItem,
    Subcategory,
)

# ================================
# Alembic Config Object
# ================================

config = context.config

# Set the SQLAlchemy URL from our application settings
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """
    Run migrations in 'offline' mode.

    Instead of connecting to the database and applying migrations,
    this just generates the SQL statements and prints them.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    """Run migrations with the given connection."""
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,  # Detect VARCHAR(50) → VARCHAR(100)
        compare_server_default=True,  # Detect default value changes
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Create async engine and run migrations (asyncpg driver)."""
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,  # Don't use connection pooling for migrations
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    """Connect to the database and apply migrations."""
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
