"""Public API interfaces for the ``expense_import`` package.

This module serves as a stable import surface for the pipeline stages. The
implementations live in their own modules and are re-exported here:

- :func:`parse_csv` / :func:`parse_csv_with_report` (``ingest.csv_parser``)
- :func:`active_categories` (``store``)
- :func:`categorize_expenses` (``categorize``)
- :func:`reconcile` / :func:`finalize` (``review``)
- :func:`commit` (``persistence``)
- :func:`import_expenses_from_csv` (``workflows.import_flow``)
"""

from __future__ import annotations

from .categorize import categorize_expenses
from .ingest.csv_parser import parse_csv, parse_csv_with_report
from .persistence import commit
from .review import finalize, reconcile
from .store import active_categories
from .workflows.import_flow import import_expenses_from_csv

__all__ = [
    "active_categories",
    "categorize_expenses",
    "commit",
    "finalize",
    "import_expenses_from_csv",
    "parse_csv",
    "parse_csv_with_report",
    "reconcile",
]
