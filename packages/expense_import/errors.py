"""Exception taxonomy for the import pipeline.

Only structural or infrastructural failures are raised. Row-level validation
problems and malformed categorizer output are absorbed upstream and turned into
"needs review" data instead.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

type ParseFailureReason = Literal["empty_file", "no_valid_rows"]


class ExpenseImportError(Exception):
    """Base class for all pipeline errors."""


class ParseError(ExpenseImportError):
    """The CSV could not yield a single usable row; nothing is committed."""

    def __init__(self, message: str, *, reason: ParseFailureReason) -> None:
        super().__init__(message)
        self.reason: ParseFailureReason = reason


class CategorizerUnavailable(ExpenseImportError):
    """The categorization oracle is not configured or cannot be reached at all.

    Signaled once, before any batch is built. Callers fall back to routing
    every uncategorized row to manual review.
    """


class IncompleteCategorization(ExpenseImportError):
    """Finalization was attempted while review items still lack a category."""

    def __init__(self, missing_indices: Sequence[int]) -> None:
        self.missing_indices: list[int] = sorted(missing_indices)
        super().__init__(
            f"{len(self.missing_indices)} expense(s) still need a category: "
            f"indices {self.missing_indices}"
        )


class StoreWriteFailure(ExpenseImportError):
    """One or more commit-stage writes failed.

    Earlier successful writes are not rolled back; ``committed`` reports how
    many records made it into the store.
    """

    def __init__(
        self,
        *,
        committed: int,
        attempted: int,
        failures: Sequence[tuple[int, BaseException]],
    ) -> None:
        self.committed = committed
        self.attempted = attempted
        # (position in the draft list, underlying error)
        self.failures: list[tuple[int, BaseException]] = list(failures)
        super().__init__(f"{committed} of {attempted} expenses imported")


class InvalidTransition(ExpenseImportError):
    """An import session step was invoked from the wrong state."""

    def __init__(self, state: str, action: str) -> None:
        self.state = state
        self.action = action
        super().__init__(f"cannot {action} while import is {state}")


__all__ = [
    "ExpenseImportError",
    "ParseError",
    "CategorizerUnavailable",
    "IncompleteCategorization",
    "StoreWriteFailure",
    "InvalidTransition",
]
