from __future__ import annotations

import logging
from datetime import UTC, datetime

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError

from db.client import get_engine
from expense_import.categories import DEFAULT_CATEGORY_CONFIGS, validate_name
from expense_import.models import Category, CommittedExpense
from expense_import.store import RecordStore, SqlRecordStore, active_categories
from tests.helpers.db import bootstrap_sqlite_db, seed_categories


@pytest.fixture
def store(tmp_path) -> SqlRecordStore:
    url = bootstrap_sqlite_db(tmp_path / "store.sqlite3")
    seed_categories(database_url=url, archived=("Other",))
    return SqlRecordStore(database_url=url)


def _record(rid: str, date: str, category: str = "Food", **kw) -> CommittedExpense:
    return CommittedExpense(
        id=rid,
        date=date,
        amount=kw.get("amount", 12.5),
        category=category,
        description=kw.get("description", f"desc {rid}"),
        created_at=kw.get("created_at", datetime(2025, 10, 1, tzinfo=UTC)),
    )


def test_sql_store_satisfies_protocol(store):
    assert isinstance(store, RecordStore)


# ---- Categories --------------------------------------------------------------


def test_active_categories_are_ordered_and_exclude_archived(store):
    names = [c.name for c in store.get_active_categories()]
    assert names == [n for n, _ in DEFAULT_CATEGORY_CONFIGS if n != "Other"]
    assert [c.name for c in store.get_archived_categories()] == ["Other"]


def test_add_category_appends_at_end(store):
    created = store.add_category("  Health   & Fitness ", "Gym, pharmacy")
    assert created == Category("Health & Fitness", "Gym, pharmacy", order=6)
    assert store.get_active_categories()[-1].name == "Health & Fitness"


@pytest.mark.parametrize("name", ["food", "OTHER", ""])
def test_add_category_rejects_duplicates_and_invalid(store, name):
    with pytest.raises(ValueError):
        store.add_category(name)


def test_validate_name_rules():
    assert validate_name("Kids' stuff / misc.").ok
    assert not validate_name("Emoji 🎉").ok
    assert not validate_name("x" * 65).ok


def test_archive_and_restore(store):
    store.archive_category("Food")
    assert "Food" not in [c.name for c in store.get_active_categories()]
    store.restore_category("Food")
    assert store.get_active_categories()[0].name == "Food"

    with pytest.raises(LookupError):
        store.archive_category("Nope")


def test_rename_moves_existing_expenses(store):
    store.add_record(_record("1", "2025-10-01", "Bills"))
    store.add_record(_record("2", "2025-10-02", "Food"))

    renamed = store.rename_category("Bills", "Bills & Utilities")

    assert renamed.name == "Bills & Utilities"
    assert renamed.order == 4
    assert {r.id: r.category for r in store.list_records()} == {
        "1": "Bills & Utilities",
        "2": "Food",
    }
    assert store.category_expense_counts() == {"Bills & Utilities": 1, "Food": 1}


def test_rename_rejects_collision(store):
    with pytest.raises(ValueError):
        store.rename_category("Bills", "food")


def test_reorder_puts_listed_first(store):
    out = store.reorder_categories(["Bills", "Food"])
    assert [c.name for c in out] == ["Bills", "Food", "Transportation", "Entertainment", "Shopping"]

    with pytest.raises(LookupError):
        store.reorder_categories(["Missing"])


def test_seed_default_categories_is_idempotent(tmp_path):
    url = bootstrap_sqlite_db(tmp_path / "empty.sqlite3")
    store = SqlRecordStore(database_url=url)

    assert store.seed_default_categories() == len(DEFAULT_CATEGORY_CONFIGS)
    assert store.seed_default_categories() == 0
    assert len(store.get_active_categories()) == len(DEFAULT_CATEGORY_CONFIGS)


# ---- Expenses ----------------------------------------------------------------


def test_add_and_list_records_newest_first(store):
    store.add_record(_record("a", "2025-10-01"))
    store.add_record(_record("b", "2025-10-03", "Bills", amount=80.0))
    store.add_record(_record("c", "2025-10-02"))

    records = store.list_records()

    assert [r.id for r in records] == ["b", "c", "a"]
    assert records[0].amount == pytest.approx(80.0)
    assert records[0].category == "Bills"


def test_list_records_orders_mixed_date_formats_by_calendar_date(store):
    store.add_record(_record("sep", "9/1/2025"))
    store.add_record(_record("oct15", "10/15/2025"))
    store.add_record(_record("oct20", "2025-10-20"))

    assert [r.id for r in store.list_records()] == ["oct20", "oct15", "sep"]


def test_list_records_breaks_date_ties_by_created_at(store):
    store.add_record(_record("early", "2025-10-01", created_at=datetime(2025, 10, 1, 8)))
    store.add_record(_record("late", "Oct 1 2025", created_at=datetime(2025, 10, 1, 9)))

    assert [r.id for r in store.list_records()] == ["late", "early"]


def test_update_record_replaces_fields_and_keeps_created_at(store):
    store.add_record(_record("u", "2025-10-01", description="Coffee"))
    [before] = store.list_records()

    changed = _record("u", "2025-10-02", "Bills", amount=30.0, description="Power bill")
    assert store.update_record(changed) is True

    [after] = store.list_records()
    assert (after.date, after.amount, after.category, after.description) == (
        "2025-10-02",
        30.0,
        "Bills",
        "Power bill",
    )
    assert after.created_at == before.created_at


def test_update_record_unknown_id_returns_false(store):
    assert store.update_record(_record("missing", "2025-10-01")) is False
    assert store.list_records() == []


@pytest.mark.parametrize(("category", "amount"), [("", 5.0), ("   ", 5.0), ("Food", 0.0)])
def test_update_record_rejects_invalid_values(store, category, amount):
    store.add_record(_record("v", "2025-10-01"))

    with pytest.raises(ValueError):
        store.update_record(_record("v", "2025-10-01", category, amount=amount))

    [kept] = store.list_records()
    assert (kept.category, kept.amount) == ("Food", 12.5)


def test_add_record_rejects_non_positive_amount(store):
    with pytest.raises(IntegrityError):
        store.add_record(_record("z", "2025-10-01", amount=0.0))
    assert store.list_records() == []


def test_delete_and_clear(store):
    for i in range(4):
        store.add_record(_record(str(i), f"2025-10-0{i + 1}"))

    assert store.delete_record("0") is True
    assert store.delete_record("0") is False
    assert store.delete_records(["1", "2", "1"]) == 2
    assert [r.id for r in store.list_records()] == ["3"]
    assert store.clear_records() == 1
    assert store.list_records() == []


# ---- Registry read failures --------------------------------------------------


class _BrokenStore:
    def get_active_categories(self):
        raise ConnectionError("database is locked")

    def add_record(self, record):  # pragma: no cover - not used
        raise AssertionError


class _ListStore:
    def __init__(self, cats):
        self._cats = cats

    def get_active_categories(self):
        return self._cats

    def add_record(self, record):  # pragma: no cover - not used
        raise AssertionError


def test_active_categories_degrades_to_empty_on_failure(caplog):
    with caplog.at_level(logging.WARNING, logger="expense_import"):
        assert active_categories(_BrokenStore()) == []
    assert "registry:read_failed" in caplog.text


def test_active_categories_filters_archived_and_sorts():
    cats = [
        Category("B", order=2),
        Category("Old", order=0, is_archived=True),
        Category("A", order=1),
    ]
    assert [c.name for c in active_categories(_ListStore(cats))] == ["A", "B"]


def test_expense_indexes_are_declared_on_the_model(store):
    indexes = inspect(get_engine(database_url=store.database_url)).get_indexes("expenses")
    assert {(ix["name"], tuple(ix["column_names"])) for ix in indexes} >= {
        ("ix_expenses_category", ("category",)),
        ("ix_expenses_created_at", ("created_at",)),
    }


def test_update_record_rounds_amount_to_cents(store):
    store.add_record(_record("r", "2025-10-01"))

    with pytest.raises(ValueError):
        store.update_record(_record("r", "2025-10-01", amount=0.004))
    assert store.update_record(_record("r", "2025-10-01", amount=9.999)) is True
    assert store.list_records()[0].amount == pytest.approx(10.0)
