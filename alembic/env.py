import os
from dotenv import load_dotenv
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context

# This Alembic env.py uses CACHE_DATABASE_URL from environment and the cache model metadata.
# Load .env so CLI invocations like `alembic upgrade head` pick up local settings
load_dotenv()

config = context.config

if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name, disable_existing_loggers=False)

from infrastructure.persistence import Base  # noqa: E402
target_metadata = Base.metadata

# CacheStorage passes its own URL through the config; plain `alembic` runs use the env.
DATABASE_URL = config.get_main_option("sqlalchemy.url") or os.getenv("CACHE_DATABASE_URL", "sqlite:///data/cache.db")


def run_migrations_offline() -> None:
    url = DATABASE_URL
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def _run_with_connection(connection) -> None:
    # Enable SQLite batch mode to allow constraint/index changes via copy-and-move
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connection = config.attributes.get("connection")
    if connection is not None:
        _run_with_connection(connection)
        return

    connectable = engine_from_config(
        {"sqlalchemy.url": DATABASE_URL},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        _run_with_connection(connection)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
