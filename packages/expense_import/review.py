"""Reconciliation and review gate.

:func:`reconcile` splits an import into rows that may be committed without a
human and rows that need one. :func:`finalize` merges human choices back in by
stable candidate index and refuses to produce anything while a review item is
still uncategorized.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from .errors import IncompleteCategorization
from .logging_setup import get_logger
from .models import (
    CandidateExpense,
    CategorizedCandidate,
    CommittedExpenseDraft,
    Confidence,
    ReconcileResult,
    ReviewItem,
)

_logger = get_logger("expense_import.review")


def needs_review(category: str | None, confidence: Confidence | None) -> bool:
    """Return True when a row cannot be auto-committed.

    A row needs review iff its category is empty or its confidence is not an
    auto-accept tier (``low`` or unknown).
    """

    if not category:
        return True
    if confidence is None:
        return True
    return not confidence.auto_accept


def reconcile(
    already_categorized: Sequence[CandidateExpense],
    categorized: Sequence[CategorizedCandidate],
) -> ReconcileResult:
    """Apply the confidence policy and split rows into auto-commit vs. review.

    Rows from ``already_categorized`` carry a CSV-supplied category and are
    treated as ``high`` confidence. Every input row appears in exactly one of
    the two output lists; both lists follow candidate index order.
    """

    auto: list[tuple[int, CommittedExpenseDraft]] = []
    review: list[ReviewItem] = []

    for cand in already_categorized:
        if not cand.category:
            raise ValueError(f"candidate {cand.index} has no category")
        auto.append((cand.index, CommittedExpenseDraft.from_candidate(cand, cand.category)))

    for item in categorized:
        if needs_review(item.category, item.confidence):
            review.append(
                ReviewItem(
                    index=item.index,
                    candidate=item.candidate,
                    category=item.category,
                    confidence=item.confidence,
                )
            )
        else:
            draft = CommittedExpenseDraft.from_candidate(item.candidate, item.category)
            auto.append((item.index, draft))

    auto.sort(key=lambda pair: pair[0])
    review.sort(key=lambda r: r.index)
    _logger.info("review:reconciled auto_commit=%d needs_review=%d", len(auto), len(review))
    return ReconcileResult(auto_commit=[d for _, d in auto], needs_review=review)


def route_all_to_review(candidates: Sequence[CandidateExpense]) -> list[ReviewItem]:
    """Review items for rows no categorizer looked at (no suggestion, no confidence)."""

    return [ReviewItem(index=c.index, candidate=c) for c in candidates]


def finalize(
    review_items: Sequence[ReviewItem],
    selections: Mapping[int, str],
) -> list[CommittedExpenseDraft]:
    """Merge human selections into review items and produce commit drafts.

    ``selections`` maps candidate index to the chosen category. An item
    without a non-empty selection is unresolved, even when it carries a
    machine suggestion; the suggestion must be confirmed explicitly.

    Raises
    ------
    IncompleteCategorization
        When any review item is left without a category; nothing is returned.
    """

    missing: list[int] = []
    drafts: list[CommittedExpenseDraft] = []
    for item in review_items:
        chosen = (selections.get(item.index) or "").strip()
        if not chosen:
            missing.append(item.index)
            continue
        drafts.append(CommittedExpenseDraft.from_candidate(item.candidate, chosen))

    if missing:
        _logger.warning("review:finalize_incomplete missing=%d", len(missing))
        raise IncompleteCategorization(missing)
    return drafts


__all__ = ["finalize", "needs_review", "reconcile", "route_all_to_review"]
