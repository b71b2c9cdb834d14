"""Parser for the expense import CSV.

Two layouts are accepted, selected by the header row:

- ``Date,Amount,Description``
- ``Date,Category,Amount,Description`` (header contains "category",
  case-insensitive)

Fields are split with a quote-aware splitter: ``"`` toggles quoting and ``""``
inside a quoted field is a literal quote. Records are line-based; a quoted
field cannot span lines.

Each row is validated independently. A bad row is logged and skipped; only an
empty file or a file with no surviving rows raises :class:`ParseError`.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal

from dateutil import parser as dtp

from ..errors import ParseError
from ..logging_setup import get_logger
from ..models import CandidateExpense, Category

type SkipReason = Literal["fields", "amount", "date", "description"]

_AMOUNT_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_DEFAULT_A = datetime(2000, 1, 1)
_DEFAULT_B = datetime(2001, 2, 2)

_logger = get_logger("expense_import.ingest.csv_parser")


@dataclass(frozen=True, slots=True)
class SkippedRow:
    line: int
    reason: SkipReason
    raw: str


@dataclass(slots=True)
class ParseReport:
    """Full outcome of a parse: surviving candidates plus what was dropped."""

    candidates: list[CandidateExpense]
    has_category_column: bool
    skipped: list[SkippedRow] = field(default_factory=list)
    # Rows whose category cell named no active category (kept, uncategorized).
    unknown_categories: int = 0


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def split_csv_line(line: str) -> list[str]:
    """Split one CSV line into trimmed fields.

    ``"`` toggles the in-quotes state unless it is immediately followed by
    another ``"`` while inside quotes, in which case both characters collapse
    to a single literal quote. Commas outside quotes end the current field.
    """

    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if ch == '"':
            if in_quotes and i + 1 < n and line[i + 1] == '"':
                current.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1
    fields.append("".join(current).strip())
    return fields


def _parse_amount(raw: str) -> float | None:
    s = raw.strip()
    if not _AMOUNT_RE.fullmatch(s):
        return None
    value = float(s)
    if not math.isfinite(value):
        return None
    # Stored with two decimal places; a value that rounds to zero is not positive.
    value = round(value, 2)
    if value <= 0:
        return None
    return value


def parse_calendar_date(raw: str) -> date | None:
    """Parse ``raw`` into a calendar date, or ``None`` if it names no full date.

    ``dateutil`` fills missing fields from a default, so ``"March"`` or
    ``"12:30"`` would otherwise parse. The text is parsed against two defaults
    that differ in year, month and day; only text that pins all three yields
    the same date both times.
    """

    s = raw.strip()
    if not s:
        return None
    try:
        first = dtp.parse(s, default=_DEFAULT_A)
        second = dtp.parse(s, default=_DEFAULT_B)
    except (ValueError, OverflowError):
        return None
    if first.date() != second.date():
        return None
    return first.date()


def _data_lines(raw_text: str) -> Iterator[tuple[int, str]]:
    """Yield ``(line_no, line)`` for non-blank lines, 1-based."""

    for line_no, line in enumerate(raw_text.split("\n"), start=1):
        if line.strip():
            yield line_no, line


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_csv_with_report(raw_text: str, categories: Iterable[Category]) -> ParseReport:
    """Parse ``raw_text`` and return candidates together with skip details.

    ``categories`` is the registry snapshot used to accept pre-categorized
    rows; archived entries never match.
    """

    lines = list(_data_lines(raw_text.lstrip("\ufeff")))
    if len(lines) < 2:
        raise ParseError("CSV file is empty or invalid", reason="empty_file")

    valid_names = {c.name for c in categories if not c.is_archived}
    _, header = lines[0]
    has_category = "category" in header.lower()

    report = ParseReport(candidates=[], has_category_column=has_category)

    def _skip(line_no: int, reason: SkipReason, raw: str, value: str = "") -> None:
        report.skipped.append(SkippedRow(line=line_no, reason=reason, raw=raw))
        _logger.warning(
            'csv_parse:row_skipped line=%d reason=%s value="%s"', line_no, reason, value
        )

    for line_no, line in lines[1:]:
        fields = split_csv_line(line)
        if len(fields) < 3:
            _skip(line_no, "fields", line, str(len(fields)))
            continue

        category_raw: str | None
        if has_category and len(fields) >= 4:
            date_raw, category_raw, amount_raw, description = fields[:4]
        else:
            date_raw, amount_raw, description = fields[:3]
            category_raw = None

        amount = _parse_amount(amount_raw)
        if amount is None:
            _skip(line_no, "amount", line, amount_raw)
            continue
        if parse_calendar_date(date_raw) is None:
            _skip(line_no, "date", line, date_raw)
            continue
        if not description:
            _skip(line_no, "description", line)
            continue

        category: str | None = None
        if category_raw:
            if category_raw in valid_names:
                category = category_raw
            else:
                report.unknown_categories += 1
                _logger.info(
                    'csv_parse:category_ignored line=%d reason=unknown_category value="%s"',
                    line_no,
                    category_raw,
                )

        report.candidates.append(
            CandidateExpense(
                index=len(report.candidates),
                date=date_raw,
                amount=amount,
                description=description,
                category=category,
            )
        )

    if not report.candidates:
        raise ParseError("No valid expenses found in CSV file", reason="no_valid_rows")

    _logger.info(
        "csv_parse:done rows=%d skipped=%d categorized=%d layout=%s",
        len(report.candidates),
        len(report.skipped),
        sum(1 for c in report.candidates if c.has_category),
        "4col" if has_category else "3col",
    )
    return report


def parse_csv(raw_text: str, categories: Iterable[Category]) -> list[CandidateExpense]:
    """Parse ``raw_text`` into an ordered list of validated candidates.

    Raises :class:`ParseError` when the text has fewer than two non-blank lines
    or when no row survives validation.
    """

    return parse_csv_with_report(raw_text, categories).candidates


__all__ = [
    "ParseReport",
    "SkippedRow",
    "parse_csv",
    "parse_csv_with_report",
    "parse_calendar_date",
    "split_csv_line",
]
