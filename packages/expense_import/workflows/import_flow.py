# ruff: noqa: I001
"""Workflow orchestrators for the CSV import pipeline.

:class:`ImportSession` holds the state of one import invocation:

``PARSED -> CATEGORIZING -> (AUTO_READY | AWAITING_REVIEW) -> COMMITTED``

Each step checks the current state and raises :class:`InvalidTransition` when
called out of order. :func:`import_expenses_from_csv` composes parse,
categorize, review, and commit behind a single call for front-ends.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..categorize import categorize_expenses
from ..errors import (
    CategorizerUnavailable,
    ExpenseImportError,
    IncompleteCategorization,
    InvalidTransition,
    ParseError,
    StoreWriteFailure,
)
from ..ingest.csv_parser import ParseReport, parse_csv_with_report
from ..logging_setup import get_logger
from ..models import (
    CandidateExpense,
    CategorizedCandidate,
    Category,
    CommittedExpenseDraft,
    ReviewItem,
)
from ..persistence import commit as commit_drafts
from ..review import finalize, reconcile, route_all_to_review
from ..store import RecordStore, active_categories

_logger = get_logger("expense_import.workflows.import_flow")

type Categorizer = Callable[..., list[CategorizedCandidate]]
type CategorySelector = Callable[[ReviewItem, Sequence[Category]], str | None]


class ImportState(StrEnum):
    PARSED = "parsed"
    CATEGORIZING = "categorizing"
    AUTO_READY = "auto_ready"
    AWAITING_REVIEW = "awaiting_review"
    COMMITTED = "committed"
    FAILED = "failed"


class ImportSession:
    """State for a single import, from parsed candidates to committed records.

    Parameters
    ----------
    report:
        Output of the CSV parser.
    categories:
        Active category snapshot taken before the import started. Used for the
        categorizer prompt and to validate manual selections.
    """

    def __init__(self, report: ParseReport, categories: Sequence[Category]) -> None:
        self.report = report
        self.categories: list[Category] = list(categories)
        self.state = ImportState.PARSED
        self.categorizer_available: bool | None = None
        self.committed_count = 0
        self._auto: list[CommittedExpenseDraft] = []
        self._review: dict[int, ReviewItem] = {}
        self._selections: dict[int, str] = {}

    @classmethod
    def from_csv(cls, raw_text: str, categories: Sequence[Category]) -> ImportSession:
        """Parse ``raw_text`` and return a session in ``PARSED``.

        Raises ``ParseError`` when the file yields no usable rows.
        """

        return cls(parse_csv_with_report(raw_text, categories), categories)

    # ---- views -------------------------------------------------------------

    @property
    def candidates(self) -> list[CandidateExpense]:
        return self.report.candidates

    @property
    def already_categorized(self) -> list[CandidateExpense]:
        return [c for c in self.report.candidates if c.has_category]

    @property
    def needs_category(self) -> list[CandidateExpense]:
        return [c for c in self.report.candidates if not c.has_category]

    @property
    def auto_commit(self) -> list[CommittedExpenseDraft]:
        return list(self._auto)

    @property
    def review_items(self) -> list[ReviewItem]:
        return [self._review[i] for i in sorted(self._review)]

    @property
    def pending_indices(self) -> list[int]:
        """Review indices that still have no selected category."""

        return [i for i in sorted(self._review) if not self._selections.get(i)]

    @property
    def selections(self) -> dict[int, str]:
        return dict(self._selections)

    def _require(self, action: str, *allowed: ImportState) -> None:
        if self.state not in allowed:
            raise InvalidTransition(self.state.value, action)

    # ---- steps -------------------------------------------------------------

    def categorize(self, categorizer: Categorizer = categorize_expenses, **kwargs: Any) -> None:
        """Run the categorizer over rows lacking a category and apply the review gate.

        The categorizer is skipped when every row already has a category. When
        it is unavailable, every uncategorized row goes to review with no
        suggestion.
        """

        self._require("categorize", ImportState.PARSED)
        self.state = ImportState.CATEGORIZING

        pending = self.needs_category
        categorized: list[CategorizedCandidate] = []
        unsuggested: list[CandidateExpense] = []
        if pending:
            try:
                categorized = categorizer(pending, self.categories, **kwargs)
                self.categorizer_available = True
            except CategorizerUnavailable as e:
                _logger.warning(
                    "import:categorizer_unavailable rows=%d error=%s", len(pending), e
                )
                self.categorizer_available = False
                unsuggested = pending

        result = reconcile(self.already_categorized, categorized)
        self._auto = result.auto_commit
        review = result.needs_review + route_all_to_review(unsuggested)
        self._review = {item.index: item for item in review}

        self.state = ImportState.AWAITING_REVIEW if self._review else ImportState.AUTO_READY
        _logger.info(
            "import:categorized state=%s auto_commit=%d needs_review=%d",
            self.state.value,
            len(self._auto),
            len(self._review),
        )

    def select_category(self, index: int, category: str) -> None:
        """Record a human-chosen category for the review item at ``index``."""

        self._require("select a category", ImportState.AWAITING_REVIEW)
        if index not in self._review:
            raise KeyError(f"no review item with index {index}")
        chosen = category.strip()
        if not chosen:
            raise ValueError("category must be non-empty")
        if chosen not in {c.name for c in self.categories}:
            raise ValueError(f"unknown category: {chosen!r}")
        self._selections[index] = chosen

    def commit(self, store: RecordStore) -> int:
        """Finalize review selections and write every row to ``store``.

        Raises ``IncompleteCategorization`` (state unchanged, nothing written)
        when a review item lacks a category. A ``StoreWriteFailure`` still
        moves the session to ``COMMITTED``, since earlier writes persist.
        """

        self._require("commit", ImportState.AUTO_READY, ImportState.AWAITING_REVIEW)
        reviewed = finalize(self.review_items, self._selections)
        drafts = self._auto + reviewed
        try:
            self.committed_count = commit_drafts(drafts, store)
        except StoreWriteFailure as e:
            self.committed_count = e.committed
            self.state = ImportState.COMMITTED
            raise
        self.state = ImportState.COMMITTED
        return self.committed_count


@dataclass(slots=True)
class ImportSummary:
    """What a front-end needs to report after :func:`import_expenses_from_csv`."""

    state: ImportState
    committed: int = 0
    attempted: int = 0
    review_items: list[ReviewItem] = field(default_factory=list)
    categorizer_available: bool | None = None
    report: ParseReport | None = None
    error: ExpenseImportError | None = None
    session: ImportSession | None = None

    @property
    def message(self) -> str:
        if self.state is ImportState.FAILED and self.error is not None:
            return str(self.error)
        if isinstance(self.error, StoreWriteFailure):
            return str(self.error)
        if self.state is ImportState.AWAITING_REVIEW:
            pending = (
                len(self.session.pending_indices)
                if self.session is not None
                else len(self.review_items)
            )
            return f"Please categorize {pending} expense(s) manually"
        return f"Imported {self.committed} expense(s)"


def import_expenses_from_csv(
    raw_text: str,
    store: RecordStore,
    *,
    selector: CategorySelector | None = None,
    categorizer: Categorizer = categorize_expenses,
    on_progress: Callable[[str], None] | None = None,
    **categorizer_kwargs: Any,
) -> ImportSummary:
    """End-to-end: CSV text -> candidates -> categorize -> review -> commit.

    Parameters
    ----------
    raw_text:
        Full CSV contents.
    store:
        Record store providing categories and receiving committed expenses.
    selector:
        Called once per review item with the item and the active categories;
        returns the chosen category name or ``None`` to leave it unresolved.
        Without a selector an import that needs review stops in
        ``AWAITING_REVIEW`` and commits nothing.
    categorizer:
        Injection point for tests; defaults to :func:`categorize_expenses`.
    on_progress:
        Optional callable receiving short status lines (e.g., ``print``).
    categorizer_kwargs:
        Passed through to the categorizer (``batch_size``, ``concurrency``,
        ``model``).

    Returns
    -------
    ImportSummary
        ``FAILED`` only for parse errors; categorizer trouble always ends in
        ``AWAITING_REVIEW`` or ``COMMITTED``.
    """

    categories = active_categories(store)
    try:
        session = ImportSession.from_csv(raw_text, categories)
    except ParseError as e:
        _logger.warning("import:parse_failed reason=%s", e.reason)
        return ImportSummary(state=ImportState.FAILED, error=e)

    if on_progress and session.needs_category:
        on_progress(f"Categorizing {len(session.needs_category)} expense(s)…")
    session.categorize(categorizer, **categorizer_kwargs)

    def _summary(error: ExpenseImportError | None = None) -> ImportSummary:
        return ImportSummary(
            state=session.state,
            committed=session.committed_count,
            attempted=len(session.candidates),
            review_items=session.review_items,
            categorizer_available=session.categorizer_available,
            report=session.report,
            error=error,
            session=session,
        )

    if session.state is ImportState.AWAITING_REVIEW:
        if selector is None:
            return _summary()
        for item in session.review_items:
            choice = selector(item, session.categories)
            if not choice:
                continue
            try:
                session.select_category(item.index, choice)
            except ValueError as e:
                # Left unresolved; commit then reports the item as missing.
                _logger.warning(
                    "import:selection_rejected index=%d category=%r error=%s",
                    item.index,
                    choice,
                    e,
                )

    try:
        session.commit(store)
    except IncompleteCategorization as e:
        return _summary(e)
    except StoreWriteFailure as e:
        return _summary(e)
    return _summary()


__all__ = [
    "CategorySelector",
    "ImportSession",
    "ImportState",
    "ImportSummary",
    "import_expenses_from_csv",
]
