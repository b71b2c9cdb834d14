"""Logging for the ``expense_import`` package.

Modules log through ``get_logger("expense_import.<module>")`` and never attach
handlers. Only an entrypoint (the CLI) calls :func:`configure_logging`, which
routes the package logger to a single stream. Until then the package stays
silent through a ``NullHandler``.

Lines are short ``area:event key=value`` records, e.g.
``categorize:batch_done batch=1/3 size=40 received=40 latency_ms=812.40``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

PACKAGE_LOGGER = "expense_import"
LEVEL_ENV_VAR = "EXPENSE_IMPORT_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_handler: logging.Handler | None = None


def resolve_level(level: int | str | None = None) -> int:
    """Turn ``level`` (or ``EXPENSE_IMPORT_LOG_LEVEL``) into a numeric level.

    Unknown names resolve to ``INFO``.
    """

    if level is None:
        level = os.getenv(LEVEL_ENV_VAR) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    mapped = logging.getLevelNamesMapping().get(name)
    return mapped if mapped is not None else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> logging.Handler:
    """Route the package logger to ``stream``; later calls return the same handler."""

    global _handler
    if _handler is not None:
        return _handler

    pkg = logging.getLogger(PACKAGE_LOGGER)
    for h in [h for h in pkg.handlers if isinstance(h, logging.NullHandler)]:
        pkg.removeHandler(h)

    resolved = resolve_level(level)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
    pkg.addHandler(handler)
    pkg.setLevel(resolved)
    # The handler above is the only sink; the root logger stays untouched.
    pkg.propagate = False

    _handler = handler
    return handler


def get_logger(name: str) -> logging.Logger:
    pkg = logging.getLogger(PACKAGE_LOGGER)
    if _handler is None and not pkg.handlers:
        pkg.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "resolve_level"]
