"""Ingest utilities shared by CLI commands and workflows."""

from __future__ import annotations

from collections.abc import Iterable
from os import PathLike
from pathlib import Path

from ..models import Category
from .csv_parser import ParseReport, parse_csv_with_report


def read_csv_text(csv_path: str | PathLike[str]) -> str:
    """Read an import CSV as text, tolerating a UTF-8 byte-order mark.

    Undecodable bytes are replaced rather than raised so a stray byte in one
    description only affects that row's text.
    """

    p = Path(csv_path)
    return p.read_bytes().decode("utf-8-sig", errors="replace")


def load_candidates_from_csv(
    csv_path: str | PathLike[str], categories: Iterable[Category]
) -> ParseReport:
    """Read ``csv_path`` and parse it against the given category snapshot."""

    return parse_csv_with_report(read_csv_text(csv_path), categories)


__all__ = ["load_candidates_from_csv", "read_csv_text"]
