"""
============================================================
TARJETA CRC — alembic/env.py
============================================================
Responsibilities:
  - Correr las migraciones del esquema de acceso (roles, permisos,
    user_roles, audit_logs) online u offline.
  - Resolver la URL: DATABASE_URL (misma variable que la app) y, si
    falta, sqlalchemy.url de alembic.ini.

Collaborators:
  - alembic.context
  - SQLAlchemy (engine sin pool, driver psycopg 3)

Policy:
  - SQL escrito a mano en versions/: no hay metadata ORM ni autogenerate.
============================================================
"""

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

_DRIVER_PREFIXES = ("postgresql://", "postgres://")


def database_url() -> str:
    url = os.environ.get("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    for prefix in _DRIVER_PREFIXES:
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    return url


def run_offline() -> None:
    context.configure(
        url=database_url(),
        target_metadata=None,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = create_engine(database_url(), poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=None)
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
