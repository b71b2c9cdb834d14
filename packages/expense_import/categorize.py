"""Batch expense categorization against the OpenAI Responses API.

Public API:
    - :func:`categorize_expenses`

No side effects occur at import time (no client creation, no logging handler
attachment, no environment reads). Tunables are read from the environment on
each call and may be overridden by keyword arguments.
"""

from __future__ import annotations

import math
import os
import random
import time
from collections.abc import Iterable, Sequence
from typing import Any, NamedTuple

from openai import OpenAI, OpenAIError

from . import prompting
from .categorization import parse_batch_response
from .errors import CategorizerUnavailable
from .logging_setup import get_logger
from .models import CandidateExpense, CategorizedCandidate, Category, OracleDecision
from .pmap import p_map

# ---- Tunables (private) ------------------------------------------------------

_BATCH_SIZE_DEFAULT: int = 40
_CONCURRENCY_DEFAULT: int = 1
_CONCURRENCY_MAX: int = 8
_MAX_ATTEMPTS: int = 3
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20
_TEMPERATURE: float = 0.1

_MODEL_DEFAULT: str = "gpt-4o"

_logger = get_logger("expense_import.categorize")


# ---- Configuration -----------------------------------------------------------


def _positive_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        _logger.warning("categorize:config_invalid var=%s value=%r default=%d", name, raw, default)
        return default
    if value < 1:
        _logger.warning("categorize:config_invalid var=%s value=%r default=%d", name, raw, default)
        return default
    return value


def _resolve_batch_size(batch_size: int | None) -> int:
    if batch_size is None:
        return _positive_int_env("EXPENSE_IMPORT_BATCH_SIZE", _BATCH_SIZE_DEFAULT)
    if not isinstance(batch_size, int) or batch_size <= 0:
        raise ValueError("batch_size must be a positive integer")
    return batch_size


def _resolve_concurrency(concurrency: int | None) -> int:
    if concurrency is None:
        concurrency = _positive_int_env("EXPENSE_IMPORT_CONCURRENCY", _CONCURRENCY_DEFAULT)
    elif not isinstance(concurrency, int) or concurrency <= 0:
        raise ValueError("concurrency must be a positive integer")
    return min(concurrency, _CONCURRENCY_MAX)


def _resolve_model(model: str | None) -> str:
    return model or os.getenv("EXPENSE_IMPORT_MODEL") or _MODEL_DEFAULT


# ---- Internal helpers --------------------------------------------------------


def _extract_response_text(resp: Any) -> str | None:
    """Locate the text output of a Responses SDK result.

    Prefer ``resp.output_text``; fall back to ``resp.output[0].content[0].text``.
    """

    text: str | None = getattr(resp, "output_text", None)
    if text and isinstance(text, str):
        return text
    try:
        first = resp.output[0] if getattr(resp, "output", None) else None
        content = getattr(first, "content", None)
        if content:
            txt_obj = getattr(content[0], "text", None)
            if isinstance(txt_obj, str):
                return txt_obj
            # Some SDKs expose text as an object with a ``value`` string.
            maybe_val = getattr(txt_obj, "value", None)
            if isinstance(maybe_val, str):
                return maybe_val
    except (AttributeError, IndexError, TypeError):
        return None
    return None


def _paginate(n_total: int, batch_size: int) -> Iterable[tuple[int, int, int]]:
    """Yield ``(batch_index, base, end)`` half-open ranges over ``n_total`` items."""

    for k in range(math.ceil(n_total / batch_size)):
        base = k * batch_size
        yield (k, base, min(base + batch_size, n_total))


def _create_client() -> OpenAI:
    return OpenAI()


def _is_retryable(exc: BaseException) -> bool:
    """Return True only for HTTP 429 and 5xx errors."""

    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def _sleep_backoff(attempt_no: int) -> None:
    if attempt_no - 1 < len(_BACKOFF_SCHEDULE_SEC):
        base = _BACKOFF_SCHEDULE_SEC[attempt_no - 1]
    else:
        base = _BACKOFF_SCHEDULE_SEC[-1]
    jitter = base * _JITTER_PCT
    time.sleep(max(0.0, base + random.uniform(-jitter, jitter)))


class BatchOutcome(NamedTuple):
    batch_index: int
    decisions: list[OracleDecision]
    # True when the whole batch fell back to empty/low decisions.
    degraded: bool


class _BatchJob(NamedTuple):
    batch_index: int
    base: int
    candidates: Sequence[CandidateExpense]


def _categorize_batch(
    job: _BatchJob,
    *,
    client: OpenAI,
    model: str,
    batch_count: int,
    total: int,
    categories: Sequence[Category],
    allowed: frozenset[str],
    system_instructions: str,
    merchant_context: str,
) -> BatchOutcome:
    count = len(job.candidates)
    label = f"{job.batch_index + 1}/{batch_count}"
    user_content = prompting.build_user_content(
        job.candidates,
        categories,
        merchant_context=merchant_context,
        start_number=job.base + 1,
        batch_number=job.batch_index + 1,
        batch_count=batch_count,
        total=total,
    )
    _logger.info("categorize:batch_start batch=%s size=%d", label, count)

    attempt = 1
    while True:
        t0 = time.perf_counter()
        try:
            resp = client.responses.create(
                model=model,
                instructions=system_instructions,
                input=user_content,
                temperature=_TEMPERATURE,
            )
            break
        except Exception as e:  # noqa: BLE001 - a failed batch degrades, never aborts the import
            dt_ms = (time.perf_counter() - t0) * 1000.0
            if attempt >= _MAX_ATTEMPTS or not _is_retryable(e):
                _logger.error(
                    "categorize:batch_failed_terminal batch=%s size=%d latency_ms=%.2f error=%s",
                    label,
                    count,
                    dt_ms,
                    e.__class__.__name__,
                )
                _logger.warning(
                    "categorize:batch_degraded batch=%s size=%d reason=transport", label, count
                )
                return BatchOutcome(
                    job.batch_index, [OracleDecision.degraded() for _ in range(count)], True
                )
            _logger.warning(
                "categorize:batch_retry batch=%s size=%d latency_ms=%.2f error=%s attempt=%d",
                label,
                count,
                dt_ms,
                e.__class__.__name__,
                attempt,
            )
            _sleep_backoff(attempt)
            attempt += 1

    dt_ms = (time.perf_counter() - t0) * 1000.0
    parsed = parse_batch_response(
        _extract_response_text(resp), num_items=count, allowed=allowed
    )
    if parsed.degraded_reason is not None:
        _logger.warning(
            "categorize:batch_degraded batch=%s size=%d reason=%s",
            label,
            count,
            parsed.degraded_reason,
        )
        return BatchOutcome(job.batch_index, parsed.decisions, True)

    if parsed.received != count:
        _logger.warning(
            "categorize:batch_length_mismatch batch=%s expected=%d received=%d",
            label,
            count,
            parsed.received,
        )
    _logger.info(
        "categorize:batch_done batch=%s size=%d received=%d latency_ms=%.2f",
        label,
        count,
        parsed.received,
        dt_ms,
    )
    return BatchOutcome(job.batch_index, parsed.decisions, False)


def categorize_expenses(
    candidates: Sequence[CandidateExpense],
    categories: Sequence[Category],
    *,
    batch_size: int | None = None,
    concurrency: int | None = None,
    model: str | None = None,
) -> list[CategorizedCandidate]:
    """Categorize candidates in fixed-size batches.

    Parameters
    ----------
    candidates:
        Candidates lacking a category, in import order.
    categories:
        Snapshot of the active categories. Only these names are accepted from
        the model; anything else becomes an empty category.
    batch_size:
        Items per oracle call. Defaults to ``EXPENSE_IMPORT_BATCH_SIZE`` or 40.
    concurrency:
        Maximum batches in flight. Defaults to ``EXPENSE_IMPORT_CONCURRENCY``
        or 1 (sequential); capped at 8. Output order never depends on it.
    model:
        Responses API model. Defaults to ``EXPENSE_IMPORT_MODEL`` or ``gpt-4o``.

    Returns
    -------
    list[CategorizedCandidate]
        Exactly one result per input, in the same order. Malformed, short, or
        failed batches yield empty categories with ``low`` confidence.

    Raises
    ------
    CategorizerUnavailable
        When ``OPENAI_API_KEY`` is missing or the client cannot be created.
        Raised once, before any batch is sent.
    """

    items = list(candidates)
    if not items:
        return []

    size = _resolve_batch_size(batch_size)
    workers = _resolve_concurrency(concurrency)
    model_name = _resolve_model(model)

    if not os.getenv("OPENAI_API_KEY"):
        raise CategorizerUnavailable("OpenAI API key not configured")
    try:
        client = _create_client()
    except OpenAIError as e:
        raise CategorizerUnavailable(f"OpenAI client unavailable: {e}") from e

    # Computed once over the whole import and reused by every batch.
    merchant_context = prompting.build_merchant_context(items)
    system_instructions = prompting.build_system_instructions()
    allowed = frozenset(c.name for c in categories)

    jobs = [_BatchJob(k, base, items[base:end]) for k, base, end in _paginate(len(items), size)]
    _logger.info(
        "categorize:start items=%d batches=%d batch_size=%d concurrency=%d model=%s",
        len(items),
        len(jobs),
        size,
        workers,
        model_name,
    )

    def _map_batch(job: _BatchJob) -> BatchOutcome:
        return _categorize_batch(
            job,
            client=client,
            model=model_name,
            batch_count=len(jobs),
            total=len(items),
            categories=categories,
            allowed=allowed,
            system_instructions=system_instructions,
            merchant_context=merchant_context,
        )

    outcomes = p_map(jobs, _map_batch, concurrency=workers)

    results: list[CategorizedCandidate] = []
    for job, outcome in zip(jobs, outcomes, strict=True):
        for cand, decision in zip(job.candidates, outcome.decisions, strict=True):
            results.append(
                CategorizedCandidate(
                    candidate=cand, category=decision.category, confidence=decision.confidence
                )
            )

    degraded = sum(1 for o in outcomes if o.degraded)
    _logger.info(
        "categorize:done items=%d batches=%d degraded_batches=%d",
        len(results),
        len(outcomes),
        degraded,
    )
    return results


__all__ = ["BatchOutcome", "categorize_expenses"]
