from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from marketplace.db_migrations import to_sqlalchemy_url


config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# Revisions replay the DDL kept in marketplace.db; there are no ORM models to diff against.
target_metadata = None

MIGRATION_OPTIONS = {
    "target_metadata": target_metadata,
    "compare_type": True,
    "transaction_per_migration": True,
}


def marketplace_database_url() -> str:
    """``flask db`` pins the app's DB_PATH; bare ``alembic`` honours DATABASE_URL / DB_PATH."""
    if config.attributes.get("explicit_url"):
        return to_sqlalchemy_url(config.get_main_option("sqlalchemy.url") or "")
    from_env = os.environ.get("DATABASE_URL") or os.environ.get("DB_PATH")
    return to_sqlalchemy_url(from_env or config.get_main_option("sqlalchemy.url") or "")


def migrate_as_script(url: str) -> None:
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **MIGRATION_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def migrate_live(url: str) -> None:
    engine = create_engine(url, poolclass=pool.NullPool, future=True)
    try:
        with engine.connect() as connection:
            context.configure(
                connection=connection,
                render_as_batch=connection.dialect.name == "sqlite",
                **MIGRATION_OPTIONS,
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    migrate_as_script(marketplace_database_url())
else:
    migrate_live(marketplace_database_url())
