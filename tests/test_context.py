from __future__ import annotations

from spinwick.clock import SystemClock
from spinwick.services.context import build_context
from tests.spinwick_fakes import FakeClock, make_settings


def test_close_cancels_owned_clock_and_closes_clients(store) -> None:
    ctx = build_context(make_settings(), store=store)

    assert isinstance(ctx.clock, SystemClock)
    ctx.close()

    assert ctx.clock.cancelled
    assert not ctx.clock.sleep(5)
    assert ctx.cloud._client.is_closed
    assert ctx.github._client.is_closed
    assert ctx.registry._client.is_closed


def test_close_leaves_injected_clock_alone(store) -> None:
    clock = FakeClock()
    ctx = build_context(make_settings(), store=store, clock=clock)

    ctx.close()

    assert ctx.clock is clock
    assert clock.sleep(1)
