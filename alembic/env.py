"""Alembic environment for the partner dashboard: users plus the imported record tables."""

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

os.environ.setdefault("APP_ENV", "dev")
from app.core.config import settings
from app.models import (  # noqa: F401  registers every table on Base.metadata
    Base,
    ComplianceRecord,
    Deliverable,
    ExternalPartner,
    FinancialRecord,
    Partner,
    Personnel,
    User,
)

config = context.config
if config.config_file_name is not None:
    # alembic.ini carries no logging sections; configure_logging owns that.
    try:
        fileConfig(config.config_file_name)
    except KeyError:
        pass

target_metadata = Base.metadata
database_url = settings.DATABASE_URL
# SQLite cannot ALTER most column properties in place.
render_as_batch = database_url.startswith("sqlite")


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting."""
    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=render_as_batch,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations against DATABASE_URL."""
    connectable = create_engine(database_url, poolclass=NullPool)
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=render_as_batch,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
