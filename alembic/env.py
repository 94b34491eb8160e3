import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool, create_engine

from artisan_booking.core.config import settings
from artisan_booking.db.session import Base

# Import all models so Alembic sees them in metadata
from artisan_booking.models.booking import Booking  # noqa: F401
from artisan_booking.models.escrow import Escrow  # noqa: F401
from artisan_booking.models.payment import Payment  # noqa: F401
from artisan_booking.models.negotiation import Negotiation, NegotiationRound  # noqa: F401
from artisan_booking.models.ledger_transaction import LedgerTransaction  # noqa: F401
from artisan_booking.models.account import ArtisanAccount, CustomerAccount  # noqa: F401
from artisan_booking.models.outbox_event import OutboxEvent  # noqa: F401
from artisan_booking.models.audit_log import AuditLog  # noqa: F401


# Alembic Config object
config = context.config

# Force sqlalchemy.url from the runtime DATABASE_URL
db_url = getattr(settings, "DATABASE_URL", None) or os.getenv("DATABASE_URL")
if not db_url:
    raise RuntimeError("DATABASE_URL is not set (check .env / artisan_booking.core.config.settings)")

config.set_main_option("sqlalchemy.url", db_url)

# Logging config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Target metadata for autogenerate
target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    url = config.get_main_option("sqlalchemy.url")

    # create_engine instead of engine_from_config: alembic.ini does not expand env vars
    connectable = create_engine(url, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
