"""Prompt construction for batch expense categorization.

This module builds:
- The merchant grouping hint (frequency of normalized descriptions), computed
  once over the whole import and shared by every batch.
- The system instructions and per-batch user content for the OpenAI
  Responses API.

All functions are pure; nothing here talks to the network.
"""

from __future__ import annotations

from collections.abc import Sequence

from .models import CandidateExpense, Category


def merchant_key(description: str) -> str:
    """Return the grouping key for a description (uppercased, trimmed)."""

    return description.upper().strip()


def build_merchant_context(candidates: Sequence[CandidateExpense]) -> str:
    """Return one ``KEY: appears N time(s)`` line per distinct merchant.

    Lines follow first-appearance order so the text is deterministic for a
    given input.
    """

    counts: dict[str, int] = {}
    for c in candidates:
        key = merchant_key(c.description)
        counts[key] = counts.get(key, 0) + 1
    return "\n".join(f"{k}: appears {n} time(s)" for k, n in counts.items())


def build_system_instructions() -> str:
    return (
        "You are an expense categorization assistant. Always respond with valid JSON only."
    )


def _format_amount(amount: float) -> str:
    return f"{amount:.2f}"


def build_user_content(
    batch: Sequence[CandidateExpense],
    categories: Sequence[Category],
    *,
    merchant_context: str,
    start_number: int,
    batch_number: int,
    batch_count: int,
    total: int,
) -> str:
    """Build the instruction text for one batch.

    Parameters
    ----------
    batch:
        Candidates in this batch, in order.
    categories:
        Active categories; names and descriptions form the classification guide.
    merchant_context:
        Output of :func:`build_merchant_context` for the whole import.
    start_number:
        1-based global number of the first candidate in ``batch``. Numbering is
        global across batches so transaction numbers never repeat.
    batch_number, batch_count:
        1-based position of this batch and the total number of batches.
    total:
        Number of candidates in the whole import.
    """

    category_lines = "\n".join(f"- {c.name}: {c.description}" for c in categories)
    category_names = ", ".join(c.name for c in categories)
    numbered = "\n".join(
        f"{start_number + i}. {c.description} (£{_format_amount(c.amount)}, {c.date})"
        for i, c in enumerate(batch)
    )
    n = len(batch)

    return f"""You are an expert expense categorization assistant. Follow this two-step process:

AVAILABLE CATEGORIES:
{category_lines}

MERCHANT CONTEXT (for consistency across all {total} transactions):
{merchant_context}

STEP 1: GROUP BY MERCHANT
Analyze the {n} transactions below and identify unique merchants (group by description field).
For each merchant group, decide which category best matches based on the category descriptions above.

STEP 2: APPLY CATEGORIZATION
Apply your categorization decision to each transaction, ensuring all transactions from the same merchant get the SAME category.

TRANSACTIONS ({n} items - this is batch {batch_number} of {batch_count}):
{numbered}

CONFIDENCE LEVELS:
- "high": Clear merchant type, obvious category match
- "medium": Reasonable inference needed
- "low": Uncertain or ambiguous (use empty "" for category)

OUTPUT FORMAT:
Return a JSON array with EXACTLY {n} objects in the SAME ORDER as the numbered list above.
Format: [{{"category": "CategoryName", "confidence": "high"|"medium"|"low"}}, ...]
Valid categories: {category_names}, or empty string ""

Output ONLY the JSON array. No markdown, no explanations."""


__all__ = [
    "build_merchant_context",
    "build_system_instructions",
    "build_user_content",
    "merchant_key",
]
