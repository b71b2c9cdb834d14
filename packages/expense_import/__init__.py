"""Public interface for the ``expense_import`` package.

CSV import pipeline for a personal expense tracker: parse, categorize with an
LLM, gate on confidence, and commit to the record store. Only symbol
re-exports live here.
"""

from .api import (
    active_categories,
    categorize_expenses,
    commit,
    finalize,
    import_expenses_from_csv,
    parse_csv,
    parse_csv_with_report,
    reconcile,
)
from .errors import (
    CategorizerUnavailable,
    ExpenseImportError,
    IncompleteCategorization,
    InvalidTransition,
    ParseError,
    StoreWriteFailure,
)
from .models import (
    CandidateExpense,
    CategorizedCandidate,
    Category,
    CommittedExpense,
    CommittedExpenseDraft,
    Confidence,
    ReconcileResult,
    ReviewItem,
)

__all__ = [
    # API
    "active_categories",
    "categorize_expenses",
    "commit",
    "finalize",
    "import_expenses_from_csv",
    "parse_csv",
    "parse_csv_with_report",
    "reconcile",
    # Errors
    "ExpenseImportError",
    "ParseError",
    "CategorizerUnavailable",
    "IncompleteCategorization",
    "StoreWriteFailure",
    "InvalidTransition",
    # Models / types
    "Category",
    "CandidateExpense",
    "CategorizedCandidate",
    "CommittedExpense",
    "CommittedExpenseDraft",
    "Confidence",
    "ReconcileResult",
    "ReviewItem",
]
