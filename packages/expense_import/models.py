"""Data models for the ``expense_import`` pipeline.

Request-scoped records (``CandidateExpense``, ``CategorizedCandidate``,
``ReviewItem``, ``CommittedExpenseDraft``) are owned by one import invocation
and never shared. ``Category`` and ``CommittedExpense`` mirror long-lived rows
owned by the record store; the pipeline only reads the former and appends the
latter.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator

# ---------------------------------------------------------------------------
# Confidence tiers
# ---------------------------------------------------------------------------


class Confidence(StrEnum):
    """Categorizer's self-reported certainty tier."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def auto_accept(self) -> bool:
        """Return True when a non-empty category at this tier may skip review."""

        match self:
            case Confidence.HIGH | Confidence.MEDIUM:
                return True
            case Confidence.LOW:
                return False


# ---------------------------------------------------------------------------
# Categories (owned by the record store)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Category:
    """A user-defined category.

    ``name`` is the case-sensitive identity key. ``description`` guides both
    humans and the categorizer; ``order`` ranks categories for display and
    prompt construction.
    """

    name: str
    description: str = ""
    order: int = 0
    is_archived: bool = False


# ---------------------------------------------------------------------------
# Pipeline records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CandidateExpense:
    """A parsed, validated row awaiting categorization and/or commit.

    ``index`` is the 0-based position among the rows that survived parsing and
    is the stable key used to merge manual category choices back in.
    ``date`` keeps the raw CSV string so it round-trips unchanged.
    ``category`` is set only when the CSV supplied a known, active name.
    """

    index: int
    date: str
    amount: float
    description: str
    category: str | None = None

    @property
    def has_category(self) -> bool:
        return bool(self.category)


@dataclass(frozen=True, slots=True)
class CategorizedCandidate:
    """A candidate paired with the categorizer's decision.

    An empty ``category`` means the categorizer could not decide.
    """

    candidate: CandidateExpense
    category: str
    confidence: Confidence

    @property
    def index(self) -> int:
        return self.candidate.index


@dataclass(frozen=True, slots=True)
class ReviewItem:
    """A candidate that needs a human-supplied category before commit.

    ``category`` holds the machine suggestion (possibly empty) and
    ``confidence`` is ``None`` when no categorizer ran for this row.
    """

    index: int
    candidate: CandidateExpense
    category: str = ""
    confidence: Confidence | None = None


@dataclass(frozen=True, slots=True)
class CommittedExpenseDraft:
    """A fully categorized record ready for the commit stage."""

    date: str
    amount: float
    category: str
    description: str

    def __post_init__(self) -> None:
        if not self.category or not self.category.strip():
            raise ValueError("CommittedExpenseDraft.category must be non-empty")

    @classmethod
    def from_candidate(cls, candidate: CandidateExpense, category: str) -> CommittedExpenseDraft:
        return cls(
            date=candidate.date,
            amount=candidate.amount,
            category=category,
            description=candidate.description,
        )


@dataclass(frozen=True, slots=True)
class CommittedExpense:
    """A persisted expense record."""

    id: str
    date: str
    amount: float
    category: str
    description: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """Outcome of the review gate: every row lands in exactly one list."""

    auto_commit: list[CommittedExpenseDraft]
    needs_review: list[ReviewItem]

    @property
    def fully_automatic(self) -> bool:
        return not self.needs_review


# ---------------------------------------------------------------------------
# Oracle decision DTO
# ---------------------------------------------------------------------------


class OracleDecision(BaseModel):
    """Typed view of one entry in the oracle's JSON array.

    Validation is lenient by construction: unknown category names are coerced
    to ``""`` and unrecognized confidence values to ``low`` so a single odd
    entry never fails its whole batch. The allow-list arrives through the
    validation context key ``allowed``.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    category: str = ""
    confidence: Confidence = Confidence.LOW

    @field_validator("category", mode="before")
    @classmethod
    def _category_in_allowlist(cls, v: object, info: ValidationInfo) -> str:
        if not isinstance(v, str):
            return ""
        s = v.strip()
        allowed = info.context.get("allowed") if info.context else None
        if allowed is not None and s not in allowed:
            return ""
        return s

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence_or_low(cls, v: object) -> Confidence:
        if isinstance(v, str):
            try:
                return Confidence(v.strip().lower())
            except ValueError:
                return Confidence.LOW
        return Confidence.LOW

    @classmethod
    def degraded(cls) -> OracleDecision:
        """Sentinel decision for positions the oracle failed to cover."""

        return cls(category="", confidence=Confidence.LOW)
