"""Alembic environment: runs migrations through psycopg2 against invoicehub's metadata."""

from logging.config import fileConfig
import os
import sys

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool, text

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
load_dotenv()

import invoicehub.models  # noqa: E402,F401  populates Base.metadata
from invoicehub.config import settings  # noqa: E402
from invoicehub.database import Base  # noqa: E402


def sync_database_url() -> str:
    """DATABASE_SYNC_URL if set, else DATABASE_URL with the asyncpg driver swapped for psycopg2."""
    if settings.DATABASE_SYNC_URL:
        return settings.DATABASE_SYNC_URL
    return settings.DATABASE_URL.replace("+asyncpg", "+psycopg2", 1)


config = context.config
config.set_main_option("sqlalchemy.url", sync_database_url().replace("%", "%%"))
if config.config_file_name:
    fileConfig(config.config_file_name)


def run_migrations_offline():
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=Base.metadata,
        literal_binds=True,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    engine = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        # gen_random_uuid() server defaults
        connection.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))
        connection.commit()
        context.configure(connection=connection, target_metadata=Base.metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
