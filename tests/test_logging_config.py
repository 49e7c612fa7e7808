from __future__ import annotations

import logging

from spinwick.logging_config import (
    PullRequestFilter,
    current_pull_request,
    pull_request_scope,
    resolve_level,
)


def _record() -> logging.LogRecord:
    return logging.LogRecord("spinwick.test", logging.INFO, __file__, 1, "hello", None, None)


def test_records_carry_active_pull_request() -> None:
    log_filter = PullRequestFilter()

    outside = _record()
    log_filter.filter(outside)
    with pull_request_scope("mattermost/mattermost-server#1234"):
        inside = _record()
        log_filter.filter(inside)

    assert outside.pull_request == "-"
    assert inside.pull_request == "mattermost/mattermost-server#1234"
    assert current_pull_request() == "-"


def test_resolve_level(monkeypatch) -> None:
    monkeypatch.delenv("SPINWICK_LOG_LEVEL", raising=False)
    assert resolve_level() == logging.INFO
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level(logging.ERROR) == logging.ERROR
    assert resolve_level("nonsense") == logging.INFO

    monkeypatch.setenv("SPINWICK_LOG_LEVEL", "warning")
    assert resolve_level() == logging.WARNING
