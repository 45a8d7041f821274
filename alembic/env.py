"""
env.py — Alembic Migration Environment for the inventory sync service

Loads DATABASE_URL from the app settings and imports every model so
autogenerate sees the full schema.

Business Rules:
- Always use transaction-per-migration
- The app never calls create_all at startup; Alembic owns the schema

Called by: alembic CLI
Depends on: inventory_sync.models (Base + all tables), inventory_sync.config
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from inventory_sync.config import Settings
from inventory_sync.models import Base  # noqa: F401  registers all tables on Base.metadata

config = context.config

# sqlalchemy.url comes from settings, not alembic.ini
settings = Settings()
config.set_main_option("sqlalchemy.url", settings.database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Generate SQL without connecting."""
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
    """Connect to the database and apply migrations."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
