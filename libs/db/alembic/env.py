"""Alembic environment for the expense tracker database.

``DATABASE_URL`` (from the process environment or the nearest ``.env``) takes
precedence over ``sqlalchemy.url`` in ``alembic.ini``. SQLite targets run in
batch mode so later revisions can alter columns.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from dotenv import find_dotenv, load_dotenv
from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import Connection, make_url

import db

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _database_url() -> str:
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set. Provide it via environment or set "
            "'sqlalchemy.url' in alembic.ini."
        )
    return url


def _configure(url: str, connection: Connection | None = None) -> None:
    context.configure(
        url=None if connection is not None else url,
        connection=connection,
        target_metadata=db.metadata,
        literal_binds=connection is None,
        compare_type=True,
        render_as_batch=make_url(url).get_backend_name() == "sqlite",
    )


def main() -> None:
    url = _database_url()
    if context.is_offline_mode():
        _configure(url)
        with context.begin_transaction():
            context.run_migrations()
        return

    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = url
    engine = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with engine.connect() as connection:
        _configure(url, connection)
        with context.begin_transaction():
            context.run_migrations()


main()
