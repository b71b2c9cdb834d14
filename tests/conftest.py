"""Pytest configuration for test isolation.

The pipeline reads its credentials and tunables from the environment
(``OPENAI_API_KEY``, ``EXPENSE_IMPORT_*``, ``DATABASE_URL``). A developer's
shell or ``.env`` must never leak into tests, so an autouse fixture strips
them; tests that need a value set it explicitly with ``monkeypatch``.
"""

from __future__ import annotations

import pytest

_ISOLATED_ENV = (
    "OPENAI_API_KEY",
    "EXPENSE_IMPORT_MODEL",
    "EXPENSE_IMPORT_BATCH_SIZE",
    "EXPENSE_IMPORT_CONCURRENCY",
    "EXPENSE_IMPORT_LOG_LEVEL",
    "DATABASE_URL",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def no_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make categorizer retries instant."""

    import expense_import.categorize as categorize_mod

    monkeypatch.setattr(categorize_mod, "_sleep_backoff", lambda _attempt: None)
