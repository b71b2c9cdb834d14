from __future__ import annotations

import json
import logging

import pytest

import expense_import.categorize as categorize_mod
from expense_import.errors import (
    CategorizerUnavailable,
    IncompleteCategorization,
    InvalidTransition,
    ParseError,
    StoreWriteFailure,
)
from expense_import.models import (
    CategorizedCandidate,
    Category,
    CommittedExpense,
    Confidence,
)
from expense_import.workflows.import_flow import (
    ImportSession,
    ImportState,
    import_expenses_from_csv,
)
from tests.helpers.openai_stub import OpenAIStub

CATEGORIES = [
    Category("Food", "Groceries, restaurants", order=0),
    Category("Entertainment", "Streaming, cinema", order=1),
    Category("Bills", "Utilities", order=2),
]

TWO_ROWS = (
    "Date,Amount,Description\n"
    "2025-10-01,45.50,Whole Foods grocery shopping\n"
    "2025-10-02,12.99,Netflix subscription"
)


class _MemoryStore:
    def __init__(self, categories=CATEGORIES, fail_on: set[str] | None = None) -> None:
        self.categories = list(categories)
        self.records: list[CommittedExpense] = []
        self.fail_on = fail_on or set()

    def get_active_categories(self):
        return list(self.categories)

    def add_record(self, record: CommittedExpense) -> None:
        if record.description in self.fail_on:
            raise OSError("write failed")
        self.records.append(record)


def _fixed(*decisions: tuple[str, str]):
    """Categorizer returning ``decisions`` positionally."""

    calls: list[int] = []

    def _categorizer(candidates, categories, **_kw):
        calls.append(len(candidates))
        return [
            CategorizedCandidate(c, cat, Confidence(conf))
            for c, (cat, conf) in zip(candidates, decisions, strict=True)
        ]

    _categorizer.calls = calls
    return _categorizer


def _unavailable(candidates, categories, **_kw):
    raise CategorizerUnavailable("OpenAI API key not configured")


# ---- Worked scenarios --------------------------------------------------------


def test_unconfigured_categorizer_routes_everything_to_review(monkeypatch):
    store = _MemoryStore()
    stub = OpenAIStub()
    monkeypatch.setattr(categorize_mod, "OpenAI", stub.factory())

    summary = import_expenses_from_csv(TWO_ROWS, store)

    assert summary.state is ImportState.AWAITING_REVIEW
    assert summary.categorizer_available is False
    assert [(i.index, i.category, i.confidence) for i in summary.review_items] == [
        (0, "", None),
        (1, "", None),
    ]
    assert summary.message == "Please categorize 2 expense(s) manually"
    assert summary.error is None
    assert store.records == []
    assert stub.calls == []


def test_confident_oracle_commits_everything(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    reply = json.dumps(
        [
            {"category": "Food", "confidence": "high"},
            {"category": "Entertainment", "confidence": "high"},
        ]
    )
    monkeypatch.setattr(categorize_mod, "OpenAI", OpenAIStub(reply=lambda _kw: reply).factory())
    store = _MemoryStore()

    summary = import_expenses_from_csv(TWO_ROWS, store)

    assert summary.state is ImportState.COMMITTED
    assert summary.review_items == []
    assert summary.committed == 2
    assert summary.message == "Imported 2 expense(s)"
    assert [(r.date, r.amount, r.category, r.description) for r in store.records] == [
        ("2025-10-01", 45.5, "Food", "Whole Foods grocery shopping"),
        ("2025-10-02", 12.99, "Entertainment", "Netflix subscription"),
    ]


def test_fully_categorized_csv_never_calls_the_categorizer():
    categorizer = _fixed()
    store = _MemoryStore()
    text = "Date,Category,Amount,Description\n2025-10-01,Food,45.50,Whole Foods"

    summary = import_expenses_from_csv(text, store, categorizer=categorizer)

    assert categorizer.calls == []
    assert summary.state is ImportState.COMMITTED
    assert summary.categorizer_available is None
    assert [(r.category, r.description) for r in store.records] == [("Food", "Whole Foods")]


def test_truncated_oracle_reply_splits_auto_and_review(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    reply = json.dumps([{"category": "Food", "confidence": "high"}])
    monkeypatch.setattr(categorize_mod, "OpenAI", OpenAIStub(reply=lambda _kw: reply).factory())
    text = "Date,Amount,Description\n2025-10-01,1,A\n2025-10-02,2,B\n2025-10-03,3,C\n"

    session = ImportSession.from_csv(text, CATEGORIES)
    session.categorize()

    assert session.state is ImportState.AWAITING_REVIEW
    assert [d.description for d in session.auto_commit] == ["A"]
    assert [(i.index, i.category, i.confidence) for i in session.review_items] == [
        (1, "", Confidence.LOW),
        (2, "", Confidence.LOW),
    ]


def test_only_invalid_rows_fail_without_writing():
    store = _MemoryStore()

    summary = import_expenses_from_csv("Date,Amount,Description\n2025-10-03,-5.00,Refund\n", store)

    assert summary.state is ImportState.FAILED
    assert isinstance(summary.error, ParseError)
    assert summary.message == "No valid expenses found in CSV file"
    assert store.records == []


def test_empty_file_message():
    summary = import_expenses_from_csv("", _MemoryStore())
    assert summary.message == "CSV file is empty or invalid"


# ---- Selector-driven review --------------------------------------------------


def test_selector_resolves_review_and_commits_in_index_order():
    text = (
        "Date,Category,Amount,Description\n"
        "2025-10-01,,10,Mystery shop\n"
        "2025-10-02,Bills,80,British Gas\n"
        "2025-10-03,,12.99,Netflix\n"
    )
    categorizer = _fixed(("", "low"), ("Entertainment", "medium"))
    seen = []

    def selector(item, categories):
        seen.append((item.index, [c.name for c in categories]))
        return "Food"

    store = _MemoryStore()
    summary = import_expenses_from_csv(text, store, selector=selector, categorizer=categorizer)

    assert categorizer.calls == [2]
    assert seen == [(0, ["Food", "Entertainment", "Bills"])]
    assert summary.state is ImportState.COMMITTED
    # auto-commit rows first (index order), then reviewed rows
    assert [(r.description, r.category) for r in store.records] == [
        ("British Gas", "Bills"),
        ("Netflix", "Entertainment"),
        ("Mystery shop", "Food"),
    ]


def test_skipped_selection_commits_nothing():
    categorizer = _fixed(("Food", "high"), ("", "low"))
    store = _MemoryStore()

    summary = import_expenses_from_csv(
        TWO_ROWS, store, selector=lambda _item, _cats: None, categorizer=categorizer
    )

    assert isinstance(summary.error, IncompleteCategorization)
    assert summary.error.missing_indices == [1]
    assert summary.state is ImportState.AWAITING_REVIEW
    assert store.records == []


def test_selector_returning_unknown_category_leaves_item_unresolved(caplog):
    categorizer = _fixed(("Food", "high"), ("", "low"))
    store = _MemoryStore()

    with caplog.at_level(logging.WARNING, logger="expense_import"):
        summary = import_expenses_from_csv(
            TWO_ROWS, store, selector=lambda _item, _cats: "Travel", categorizer=categorizer
        )

    assert isinstance(summary.error, IncompleteCategorization)
    assert summary.error.missing_indices == [1]
    assert summary.state is ImportState.AWAITING_REVIEW
    assert store.records == []
    assert "import:selection_rejected index=1 category='Travel'" in caplog.text


def test_awaiting_review_message_counts_only_unresolved_items():
    categorizer = _fixed(("Food", "low"), ("Entertainment", "low"))
    store = _MemoryStore()

    def _first_only(item, _cats):
        return "Food" if item.index == 0 else None

    summary = import_expenses_from_csv(
        TWO_ROWS, store, selector=_first_only, categorizer=categorizer
    )

    assert len(summary.review_items) == 2
    assert summary.message == "Please categorize 1 expense(s) manually"
    assert store.records == []


def test_awaiting_review_without_selector_commits_nothing():
    categorizer = _fixed(("Food", "high"), ("Entertainment", "low"))
    store = _MemoryStore()

    summary = import_expenses_from_csv(TWO_ROWS, store, categorizer=categorizer)

    assert summary.state is ImportState.AWAITING_REVIEW
    assert summary.categorizer_available is True
    assert [i.category for i in summary.review_items] == ["Entertainment"]
    assert store.records == []
    assert summary.session is not None


def test_partial_store_failure_is_reported():
    categorizer = _fixed(("Food", "high"), ("Entertainment", "high"))
    store = _MemoryStore(fail_on={"Netflix subscription"})

    summary = import_expenses_from_csv(TWO_ROWS, store, categorizer=categorizer)

    assert summary.state is ImportState.COMMITTED
    assert isinstance(summary.error, StoreWriteFailure)
    assert summary.committed == 1
    assert summary.message == "1 of 2 expenses imported"


def test_registry_failure_still_imports_with_manual_review():
    class _Broken(_MemoryStore):
        def get_active_categories(self):
            raise ConnectionError("down")

    categorizer = _fixed(("", "low"), ("", "low"))
    summary = import_expenses_from_csv(TWO_ROWS, _Broken(), categorizer=categorizer)

    assert summary.state is ImportState.AWAITING_REVIEW
    assert len(summary.review_items) == 2


def test_progress_and_categorizer_kwargs_are_forwarded():
    received = {}
    lines: list[str] = []

    def categorizer(candidates, categories, **kw):
        received.update(kw)
        return [CategorizedCandidate(c, "Food", Confidence.HIGH) for c in candidates]

    import_expenses_from_csv(
        TWO_ROWS,
        _MemoryStore(),
        categorizer=categorizer,
        on_progress=lines.append,
        batch_size=5,
        concurrency=2,
    )

    assert received == {"batch_size": 5, "concurrency": 2}
    assert lines and lines[0].startswith("Categorizing 2 expense(s)")


# ---- Session state machine ---------------------------------------------------


def test_session_select_and_commit():
    session = ImportSession.from_csv(TWO_ROWS, CATEGORIES)
    session.categorize(_unavailable)

    assert session.state is ImportState.AWAITING_REVIEW
    assert session.pending_indices == [0, 1]

    session.select_category(0, " Food ")
    assert session.pending_indices == [1]
    with pytest.raises(IncompleteCategorization):
        session.commit(_MemoryStore())
    assert session.state is ImportState.AWAITING_REVIEW

    session.select_category(1, "Entertainment")
    store = _MemoryStore()
    assert session.commit(store) == 2
    assert session.state is ImportState.COMMITTED
    assert session.selections == {0: "Food", 1: "Entertainment"}


def test_select_category_validation():
    session = ImportSession.from_csv(TWO_ROWS, CATEGORIES)
    session.categorize(_fixed(("Food", "high"), ("", "low")))

    with pytest.raises(KeyError):
        session.select_category(0, "Food")
    with pytest.raises(ValueError):
        session.select_category(1, "  ")
    with pytest.raises(ValueError):
        session.select_category(1, "Travel")


def test_auto_ready_session_commits_without_selection():
    session = ImportSession.from_csv(TWO_ROWS, CATEGORIES)
    session.categorize(_fixed(("Food", "high"), ("Bills", "medium")))

    assert session.state is ImportState.AUTO_READY
    assert session.commit(_MemoryStore()) == 2


def test_out_of_order_steps_raise_invalid_transition():
    session = ImportSession.from_csv(TWO_ROWS, CATEGORIES)

    with pytest.raises(InvalidTransition):
        session.commit(_MemoryStore())
    with pytest.raises(InvalidTransition):
        session.select_category(0, "Food")

    session.categorize(_fixed(("Food", "high"), ("Bills", "high")))
    with pytest.raises(InvalidTransition):
        session.categorize(_fixed())

    session.commit(_MemoryStore())
    with pytest.raises(InvalidTransition) as ei:
        session.commit(_MemoryStore())
    assert str(ei.value) == "cannot commit while import is committed"


def test_from_csv_propagates_parse_error():
    with pytest.raises(ParseError):
        ImportSession.from_csv("Date,Amount,Description\n", CATEGORIES)
