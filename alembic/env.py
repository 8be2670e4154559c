"""Alembic environment configuration."""

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from storeagent.persistence.database import Base
from storeagent.persistence.models import *  # noqa: F401, F403
from storeagent.settings import settings

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Get database URL from environment (Alembic uses sync driver)
original_url = os.environ.get("DATABASE_URL", settings.database_url) or "sqlite:///./storeagent.db"

# Convert postgres:// to postgresql:// and ensure sync driver for Alembic
if original_url.startswith("postgres://"):
    sync_url = original_url.replace("postgres://", "postgresql://", 1)
elif "+asyncpg" in original_url.lower():
    sync_url = original_url.replace("+asyncpg", "")
elif "+aiosqlite" in original_url.lower():
    sync_url = original_url.replace("+aiosqlite", "")
else:
    sync_url = original_url

# Escape % signs for ConfigParser (double them) - needed because %21 in password
sync_url = sync_url.replace("%", "%%")

config.set_main_option("sqlalchemy.url", sync_url)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    Configures the context with just a URL, so no DBAPI is needed.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
