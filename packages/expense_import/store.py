# ruff: noqa: I001
"""Record store integration for expense_import.

The pipeline consumes a deliberately narrow :class:`RecordStore` protocol:
read the active categories, append one expense. :class:`SqlRecordStore`
implements it on top of the shared database owned by ``libs/db`` and adds the
CRUD operations the surrounding front-end uses.

Every public method opens its own ``session_scope`` so each call is one
transaction; a failed ``add_record`` never undoes earlier ones.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from typing import Protocol, runtime_checkable

from sqlalchemy import delete, select

from db.client import session_scope
from db.models.expenses import Expense

from . import categories as cat_svc
from .ingest.csv_parser import parse_calendar_date
from .logging_setup import get_logger
from .models import Category, CommittedExpense

_logger = get_logger("expense_import.store")


@runtime_checkable
class RecordStore(Protocol):
    """What the import pipeline needs from persistent storage."""

    def get_active_categories(self) -> list[Category]: ...

    def add_record(self, record: CommittedExpense) -> None: ...


def active_categories(store: RecordStore) -> list[Category]:
    """Return the active categories sorted by ``order``.

    Archived entries are excluded even if the store returns them. Store
    failures yield an empty list; the categorizer can still run (every row then
    lands in review).
    """

    try:
        cats = list(store.get_active_categories())
    except Exception as e:  # noqa: BLE001 - any store failure degrades to no categories
        _logger.warning("registry:read_failed error=%s", e)
        return []
    return sorted((c for c in cats if not c.is_archived), key=lambda c: c.order)


def _row_to_expense(row: Expense) -> CommittedExpense:
    return CommittedExpense(
        id=row.id,
        date=row.date,
        amount=float(row.amount),
        category=row.category,
        description=row.description,
        created_at=row.created_at,
    )


class SqlRecordStore:
    """SQLAlchemy-backed record store.

    Parameters
    ----------
    database_url:
        SQLAlchemy URL; ``None`` defers to ``DATABASE_URL``.
    """

    def __init__(self, database_url: str | None = None) -> None:
        self.database_url = database_url

    # ---- pipeline protocol -------------------------------------------------

    def get_active_categories(self) -> list[Category]:
        with session_scope(database_url=self.database_url) as session:
            return cat_svc.list_categories(session)

    def add_record(self, record: CommittedExpense) -> None:
        with session_scope(database_url=self.database_url) as session:
            session.add(
                Expense(
                    id=record.id,
                    date=record.date,
                    amount=record.amount,
                    category=record.category,
                    description=record.description,
                    created_at=record.created_at,
                )
            )

    # ---- categories --------------------------------------------------------

    def get_archived_categories(self) -> list[Category]:
        with session_scope(database_url=self.database_url) as session:
            return cat_svc.list_categories(session, archived=True)

    def add_category(self, name: str, description: str = "") -> Category:
        with session_scope(database_url=self.database_url) as session:
            return cat_svc.create_category(session, name=name, description=description)

    def archive_category(self, name: str) -> Category:
        with session_scope(database_url=self.database_url) as session:
            return cat_svc.archive_category(session, name)

    def restore_category(self, name: str) -> Category:
        with session_scope(database_url=self.database_url) as session:
            return cat_svc.restore_category(session, name)

    def rename_category(self, old_name: str, new_name: str) -> Category:
        with session_scope(database_url=self.database_url) as session:
            return cat_svc.rename_category(session, old_name, new_name)

    def reorder_categories(self, names: Sequence[str]) -> list[Category]:
        with session_scope(database_url=self.database_url) as session:
            return cat_svc.reorder_categories(session, names)

    def category_expense_counts(self) -> dict[str, int]:
        with session_scope(database_url=self.database_url) as session:
            return cat_svc.category_expense_counts(session)

    def seed_default_categories(self) -> int:
        with session_scope(database_url=self.database_url) as session:
            return cat_svc.seed_default_categories(session)

    # ---- expenses ----------------------------------------------------------

    def list_records(self) -> list[CommittedExpense]:
        """Return all expenses, newest date first.

        Dates are stored as written in the CSV, so ordering happens on the
        parsed calendar date rather than the text. Unparseable dates sort last;
        ties fall back to ``created_at``, newest first.
        """

        with session_scope(database_url=self.database_url) as session:
            rows = session.execute(select(Expense)).scalars().all()
            records = [_row_to_expense(r) for r in rows]
        records.sort(
            key=lambda r: (parse_calendar_date(r.date) or date.min, r.created_at),
            reverse=True,
        )
        return records

    def update_record(self, record: CommittedExpense) -> bool:
        """Overwrite the stored expense with ``record.id``.

        Date, amount, category and description are replaced; ``created_at`` is
        kept. Returns ``False`` when no expense has that id.

        Raises
        ------
        ValueError
            If the category is blank or the amount is not positive once
            rounded to cents.
        """

        if not record.category or not record.category.strip():
            raise ValueError("category must be non-empty")
        amount = round(record.amount, 2)
        if not amount > 0:
            raise ValueError("amount must be positive")
        with session_scope(database_url=self.database_url) as session:
            row = session.get(Expense, record.id)
            if row is None:
                return False
            row.date = record.date
            row.amount = amount
            row.category = record.category
            row.description = record.description
        _logger.info("store:updated id=%s", record.id)
        return True

    def delete_record(self, record_id: str) -> bool:
        return self.delete_records([record_id]) == 1

    def delete_records(self, record_ids: Iterable[str]) -> int:
        ids = list(dict.fromkeys(record_ids))
        if not ids:
            return 0
        with session_scope(database_url=self.database_url) as session:
            deleted = session.execute(delete(Expense).where(Expense.id.in_(ids))).rowcount
        _logger.info("store:deleted requested=%d deleted=%d", len(ids), deleted or 0)
        return int(deleted or 0)

    def clear_records(self) -> int:
        with session_scope(database_url=self.database_url) as session:
            deleted = session.execute(delete(Expense)).rowcount
        _logger.info("store:cleared deleted=%d", deleted or 0)
        return int(deleted or 0)


__all__ = ["RecordStore", "SqlRecordStore", "active_categories"]
