"""Commit stage: stamp drafts and append them to the record store.

One store call per record. A failing record is logged and skipped; earlier
writes stay in place and later drafts are still attempted. When anything
failed, :class:`StoreWriteFailure` is raised after the last attempt with the
partial success count.
"""

from __future__ import annotations

import secrets
import string
import time
from collections.abc import Callable, Sequence
from datetime import UTC, datetime

from .errors import StoreWriteFailure
from .logging_setup import get_logger
from .models import CommittedExpense, CommittedExpenseDraft
from .store import RecordStore

_logger = get_logger("expense_import.persistence")

_ID_ALPHABET = string.digits + string.ascii_lowercase
_ID_SUFFIX_LEN = 9


def generate_id() -> str:
    """Return ``"<epoch-ms>-<9 base36 chars>"``, unique for practical purposes."""

    millis = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_SUFFIX_LEN))
    return f"{millis}-{suffix}"


def _utc_now() -> datetime:
    return datetime.now(UTC)


def commit(
    drafts: Sequence[CommittedExpenseDraft],
    store: RecordStore,
    *,
    id_factory: Callable[[], str] = generate_id,
    clock: Callable[[], datetime] = _utc_now,
) -> int:
    """Write every draft to ``store`` and return how many were written.

    Raises
    ------
    StoreWriteFailure
        After all drafts were attempted, if at least one write failed.
    """

    committed = 0
    failures: list[tuple[int, BaseException]] = []
    for pos, draft in enumerate(drafts):
        record = CommittedExpense(
            id=id_factory(),
            date=draft.date,
            amount=draft.amount,
            category=draft.category,
            description=draft.description,
            created_at=clock(),
        )
        try:
            store.add_record(record)
        except Exception as e:  # noqa: BLE001 - per-record failure is reported in aggregate
            _logger.error(
                "commit:record_failed id=%s position=%d error=%s",
                record.id,
                pos,
                e.__class__.__name__,
            )
            failures.append((pos, e))
            continue
        committed += 1

    if failures:
        _logger.warning(
            "commit:partial committed=%d attempted=%d", committed, len(drafts)
        )
        raise StoreWriteFailure(committed=committed, attempted=len(drafts), failures=failures)
    _logger.info("commit:done committed=%d", committed)
    return committed


__all__ = ["commit", "generate_id"]
