"""
Process-wide logging setup.

Workflow threads tag their records with the pull request they are working
on, so interleaved background tasks stay readable in one log stream.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
import logging
import os
import sys
from typing import Iterator

LOG_LEVEL_ENV = "SPINWICK_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(pull_request)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Client libraries log every request at INFO; poll loops would drown the output.
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")

_current_pull_request: ContextVar[str] = ContextVar("spinwick_pull_request", default="-")

_LEVEL_COLORS = {
    logging.DEBUG: "\x1b[36m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1;31m",
}


class PullRequestFilter(logging.Filter):
    """Stamp each record with the pull request of the active workflow."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.pull_request = _current_pull_request.get()
        return True


class _TerminalFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        color = _LEVEL_COLORS.get(record.levelno)
        return f"{color}{line}\x1b[0m" if color else line


@contextmanager
def pull_request_scope(label: str) -> Iterator[None]:
    token = _current_pull_request.set(label)
    try:
        yield
    finally:
        _current_pull_request.reset(token)


def current_pull_request() -> str:
    return _current_pull_request.get()


def resolve_level(level: str | int | None = None) -> int:
    if isinstance(level, int):
        return level
    name = (level or os.getenv(LOG_LEVEL_ENV) or "INFO").upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(*, level: str | int | None = None, force: bool = False) -> None:
    resolved = resolve_level(level)
    root = logging.getLogger()
    root.setLevel(resolved)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))

    # Under uvicorn or pytest somebody else owns the handlers.
    if root.handlers and not force:
        for handler in root.handlers:
            handler.setLevel(resolved)
            if not any(isinstance(f, PullRequestFilter) for f in handler.filters):
                handler.addFilter(PullRequestFilter())
        return

    use_color = sys.stderr.isatty() and not os.getenv("NO_COLOR")
    formatter_cls = _TerminalFormatter if use_color else logging.Formatter
    handler = logging.StreamHandler()
    handler.setLevel(resolved)
    handler.addFilter(PullRequestFilter())
    handler.setFormatter(formatter_cls(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    root.handlers.clear()
    root.addHandler(handler)
