"""Response parsing and alignment for batch categorization.

The oracle's answer is a loosely typed text contract. :func:`parse_batch_response`
is the narrow boundary that turns it into exactly ``num_items`` typed
decisions and never raises: anything it cannot use becomes
:meth:`OracleDecision.degraded`.
"""

from __future__ import annotations

import json
from collections.abc import Collection
from typing import Any, NamedTuple

from pydantic import ValidationError

from .models import OracleDecision


class ParsedBatch(NamedTuple):
    decisions: list[OracleDecision]
    # ``None`` when the body was a usable array; otherwise a short reason code.
    degraded_reason: str | None
    received: int


def strip_code_fences(text: str) -> str:
    """Remove a surrounding Markdown code fence (``` or ```json), if present."""

    s = text.strip()
    if s.startswith("```json"):
        s = s[len("```json") :]
    elif s.startswith("```"):
        s = s[3:]
    if s.endswith("```"):
        s = s[:-3]
    return s.strip()


def _degraded_batch(n: int) -> list[OracleDecision]:
    return [OracleDecision.degraded() for _ in range(n)]


def _decision_from_entry(entry: Any, allowed: Collection[str]) -> OracleDecision:
    if not isinstance(entry, dict):
        return OracleDecision.degraded()
    try:
        return OracleDecision.model_validate(entry, context={"allowed": allowed})
    except ValidationError:
        return OracleDecision.degraded()


def align_decisions(
    entries: list[Any], *, num_items: int, allowed: Collection[str]
) -> list[OracleDecision]:
    """Return exactly ``num_items`` decisions aligned by position.

    Missing trailing positions are padded with degraded decisions; extra
    entries are ignored.
    """

    out = [_decision_from_entry(e, allowed) for e in entries[:num_items]]
    out.extend(OracleDecision.degraded() for _ in range(num_items - len(out)))
    return out


def parse_batch_response(
    text: str | None, *, num_items: int, allowed: Collection[str]
) -> ParsedBatch:
    """Parse the oracle's text for one batch into ``num_items`` decisions.

    A missing body, invalid JSON, or a JSON value that is not an array degrades
    the whole batch.
    """

    if not text:
        return ParsedBatch(_degraded_batch(num_items), "empty", 0)
    try:
        body = json.loads(strip_code_fences(text))
    except json.JSONDecodeError:
        return ParsedBatch(_degraded_batch(num_items), "not_json", 0)
    if not isinstance(body, list):
        return ParsedBatch(_degraded_batch(num_items), "not_array", 0)
    return ParsedBatch(align_decisions(body, num_items=num_items, allowed=allowed), None, len(body))


__all__ = [
    "ParsedBatch",
    "align_decisions",
    "parse_batch_response",
    "strip_code_fences",
]
