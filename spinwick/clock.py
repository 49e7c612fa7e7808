"""Time source and per-stage deadlines for the polling loops.

Every wait goes through a ``Clock`` so a synthetic clock can drive the loops
in tests and ``SystemClock.cancel`` can interrupt a wait immediately.
"""

from __future__ import annotations

from dataclasses import dataclass
import threading
import time
from typing import Protocol

from spinwick.services.errors import WaitCancelled, WaitTimeout


class Clock(Protocol):
    def now(self) -> float: ...

    def sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``; False when the wait was cancelled."""
        ...


class SystemClock:
    def __init__(self, cancel_event: threading.Event | None = None) -> None:
        self._cancelled = cancel_event or threading.Event()

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> bool:
        return not self._cancelled.wait(max(seconds, 0.0))

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()


@dataclass(frozen=True)
class Deadline:
    clock: Clock
    seconds: float
    expires_at: float

    @classmethod
    def from_seconds(cls, clock: Clock, seconds: float) -> "Deadline":
        return cls(clock=clock, seconds=seconds, expires_at=clock.now() + seconds)

    def remaining(self) -> float:
        return max(self.expires_at - self.clock.now(), 0.0)

    def expired(self) -> bool:
        return self.remaining() <= 0


def pause(clock: Clock, seconds: float, *, stage: str) -> None:
    """Fixed pause that still honours cancellation."""
    if not clock.sleep(seconds):
        raise WaitCancelled(stage)


def wait_tick(clock: Clock, deadline: Deadline, interval: float, *, stage: str) -> None:
    """Wait one poll interval, raising once the stage deadline has passed.

    When less than a full interval remains, the remainder is waited out and
    the stage times out without another observation.
    """
    remaining = deadline.remaining()
    if remaining <= 0:
        raise WaitTimeout(stage, deadline.seconds)
    if remaining < interval:
        pause(clock, remaining, stage=stage)
        raise WaitTimeout(stage, deadline.seconds)
    pause(clock, interval, stage=stage)
