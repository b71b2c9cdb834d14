"""DB helpers for tests: bootstrap a temporary SQLite DB and seed categories."""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

from db import Base
from db.client import get_engine, session_scope
from db.models.expenses import ExpenseCategory
from sqlalchemy import event

from expense_import.categories import DEFAULT_CATEGORY_CONFIGS


def bootstrap_sqlite_db(db_file: Path, *, set_default_env: bool = False) -> str:
    """Create a SQLite database file, initialize schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(database_url=url)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _):  # pragma: no cover - tiny bridge
        dbapi_conn.execute("PRAGMA foreign_keys = ON")

    Base.metadata.create_all(bind=engine)

    if set_default_env:
        os.environ.setdefault("DATABASE_URL", url)
    return url


def seed_categories(
    *,
    database_url: str,
    configs: Iterable[tuple[str, str]] = DEFAULT_CATEGORY_CONFIGS,
    archived: Iterable[str] = (),
) -> None:
    """Insert ``(name, description)`` rows in order; names in ``archived`` are archived."""

    archived_set = set(archived)
    with session_scope(database_url=database_url) as session:
        for i, (name, desc) in enumerate(configs):
            session.add(
                ExpenseCategory(
                    name=name,
                    description=desc,
                    sort_order=i,
                    is_archived=name in archived_set,
                )
            )
