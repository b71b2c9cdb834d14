"""Category domain helpers and service operations.

This module centralizes small, server-side validated operations for the
``expense_categories`` reference table. Functions take a SQLAlchemy session
and leave transaction scope to the caller (see :mod:`expense_import.store`).

Exports
-------
- ``DEFAULT_CATEGORY_CONFIGS``: the six categories seeded into new stores.
- ``create_category(...)``: creation with case-insensitive conflict detection.
- ``archive_category`` / ``restore_category`` / ``rename_category`` /
  ``reorder_categories``: lifecycle operations.
- ``normalize_name(...)`` and ``validate_name(...)``: helpers shared with the
  terminal UI for early feedback.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from db.models.expenses import Expense, ExpenseCategory
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from .logging_setup import get_logger
from .models import Category

_logger = get_logger("expense_import.categories")

DEFAULT_CATEGORY_CONFIGS: tuple[tuple[str, str], ...] = (
    ("Food", "Groceries, restaurants, cafes, food delivery"),
    ("Transportation", "Gas, public transit, uber/taxi, parking, car maintenance"),
    ("Entertainment", "Movies, games, concerts, streaming services, hobbies"),
    ("Shopping", "Clothing, electronics, home goods, general retail"),
    ("Bills", "Utilities, rent, phone, internet, insurance, subscriptions"),
    ("Other", "Anything that doesn't clearly fit the above"),
)

# ---------------------------
# Name normalization/validation
# ---------------------------

_ALLOWED_RE = re.compile(r"^[A-Za-z0-9 &\-/'.,]+$")


def normalize_name(name: str) -> str:
    """Return a trimmed, single-spaced representation of ``name``.

    Does not change case; names are case-sensitive identity keys.
    """

    return " ".join(name.strip().split())


@dataclass(frozen=True, slots=True)
class NameValidation:
    ok: bool
    reason: str | None = None


def validate_name(name: str, *, min_len: int = 1, max_len: int = 64) -> NameValidation:
    """Lightweight client/server validation for category names.

    Rules
    -----
    - Trim whitespace; enforce length bounds 1..64.
    - Allowed characters: letters, numbers, spaces, and ``& - / ' . ,``.
    """

    n = normalize_name(name)
    if len(n) < min_len:
        return NameValidation(False, "Name cannot be empty")
    if len(n) > max_len:
        return NameValidation(False, f"Name must be at most {max_len} characters")
    if not _ALLOWED_RE.match(n):
        return NameValidation(False, "Only letters, numbers, spaces, and & - / ' . , are allowed")
    return NameValidation(True, None)


# ---------------------------
# Row mapping
# ---------------------------


def _row_to_category(row: ExpenseCategory) -> Category:
    return Category(
        name=row.name,
        description=row.description or "",
        order=int(row.sort_order or 0),
        is_archived=bool(row.is_archived),
    )


def _find_case_insensitive(session: Session, name: str) -> ExpenseCategory | None:
    return (
        session.execute(
            select(ExpenseCategory).where(func.lower(ExpenseCategory.name) == name.lower())
        )
        .scalars()
        .first()
    )


def _get_exact(session: Session, name: str) -> ExpenseCategory:
    row = session.get(ExpenseCategory, name)
    if row is None:
        raise LookupError(f"Category not found: {name!r}")
    return row


# ---------------------------
# Queries
# ---------------------------


def list_categories(session: Session, *, archived: bool = False) -> list[Category]:
    """Return active (or archived) categories sorted by order, then name."""

    rows = (
        session.execute(
            select(ExpenseCategory)
            .where(ExpenseCategory.is_archived == archived)
            .order_by(ExpenseCategory.sort_order, ExpenseCategory.name)
        )
        .scalars()
        .all()
    )
    return [_row_to_category(r) for r in rows]


def category_expense_counts(session: Session) -> dict[str, int]:
    """Return the number of stored expenses per category name."""

    rows = session.execute(
        select(Expense.category, func.count(Expense.id)).group_by(Expense.category)
    ).all()
    return {name: int(count) for name, count in rows}


# ---------------------------
# Mutations
# ---------------------------


def create_category(session: Session, *, name: str, description: str = "") -> Category:
    """Create a new active category at the end of the current order.

    Raises
    ------
    ValueError
        When the name is invalid or collides case-insensitively with an existing
        (active or archived) category.
    """

    name_n = normalize_name(name)
    v = validate_name(name_n)
    if not v.ok:
        raise ValueError(f"Invalid category name: {v.reason}")

    existing = _find_case_insensitive(session, name_n)
    if existing is not None:
        raise ValueError(f"A category named {existing.name!r} already exists")

    max_order = session.execute(select(func.max(ExpenseCategory.sort_order))).scalar()
    row = ExpenseCategory(
        name=name_n,
        description=description.strip(),
        sort_order=(max_order + 1) if max_order is not None else 0,
        is_archived=False,
    )
    session.add(row)
    session.flush()
    _logger.info("categories:created name=%s order=%d", row.name, row.sort_order)
    return _row_to_category(row)


def archive_category(session: Session, name: str) -> Category:
    """Hide ``name`` from new imports; existing expenses keep their category."""

    row = _get_exact(session, name)
    row.is_archived = True
    row.updated_at = func.now()
    session.flush()
    _logger.info("categories:archived name=%s", name)
    return _row_to_category(row)


def restore_category(session: Session, name: str) -> Category:
    row = _get_exact(session, name)
    row.is_archived = False
    row.updated_at = func.now()
    session.flush()
    _logger.info("categories:restored name=%s", name)
    return _row_to_category(row)


def rename_category(session: Session, old_name: str, new_name: str) -> Category:
    """Rename a category and carry stored expenses over to the new name.

    Renaming to a case variant of the same name is allowed; any other collision
    raises ``ValueError``.
    """

    new_n = normalize_name(new_name)
    v = validate_name(new_n)
    if not v.ok:
        raise ValueError(f"Invalid category name: {v.reason}")

    row = _get_exact(session, old_name)
    if new_n == row.name:
        return _row_to_category(row)
    clash = _find_case_insensitive(session, new_n)
    if clash is not None and clash.name != row.name:
        raise ValueError(f"A category named {clash.name!r} already exists")

    replacement = ExpenseCategory(
        name=new_n,
        description=row.description,
        sort_order=row.sort_order,
        is_archived=row.is_archived,
    )
    session.delete(row)
    session.flush()
    session.add(replacement)
    moved = session.execute(
        update(Expense).where(Expense.category == old_name).values(category=new_n)
    ).rowcount
    session.flush()
    _logger.info(
        "categories:renamed old=%s new=%s expenses_moved=%d", old_name, new_n, moved or 0
    )
    return _row_to_category(replacement)


def reorder_categories(session: Session, names: Sequence[str]) -> list[Category]:
    """Assign ``sort_order`` by position in ``names``.

    Categories not listed keep their relative order and follow the listed ones.
    """

    rows = {r.name: r for r in session.execute(select(ExpenseCategory)).scalars().all()}
    unknown = [n for n in names if n not in rows]
    if unknown:
        raise LookupError(f"Unknown categories: {unknown}")

    listed = list(dict.fromkeys(names))
    listed_set = set(listed)
    rest = sorted(
        (r for n, r in rows.items() if n not in listed_set),
        key=lambda r: (r.sort_order, r.name),
    )
    for i, row in enumerate([rows[n] for n in listed] + rest):
        row.sort_order = i
    session.flush()
    return list_categories(session)


def seed_default_categories(session: Session) -> int:
    """Insert any missing default categories; return how many were added."""

    existing = {n.lower() for n in session.execute(select(ExpenseCategory.name)).scalars()}
    added = 0
    for i, (name, description) in enumerate(DEFAULT_CATEGORY_CONFIGS):
        if name.lower() in existing:
            continue
        session.add(
            ExpenseCategory(name=name, description=description, sort_order=i, is_archived=False)
        )
        added += 1
    session.flush()
    if added:
        _logger.info("categories:seeded added=%d", added)
    return added


__all__ = [
    "DEFAULT_CATEGORY_CONFIGS",
    "NameValidation",
    "archive_category",
    "category_expense_counts",
    "create_category",
    "list_categories",
    "normalize_name",
    "rename_category",
    "reorder_categories",
    "restore_category",
    "seed_default_categories",
    "validate_name",
]
