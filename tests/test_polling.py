"""
Tests for timeout-bounded polling
"""

import asyncio
from datetime import timedelta

import pytest

from renderfarm.core.polling import to_seconds, wait_until


class Probe:
    """Probe that turns true after a number of calls"""

    def __init__(self, succeed_after=None, error=None):
        self.calls = 0
        self.succeed_after = succeed_after
        self.error = error

    async def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.succeed_after is not None and self.calls >= self.succeed_after


class TestToSeconds:

    def test_numbers(self):
        assert to_seconds(3) == 3.0
        assert to_seconds(0.5) == 0.5

    def test_timedelta(self):
        assert to_seconds(timedelta(minutes=2)) == 120.0


class TestWaitUntil:

    @pytest.mark.asyncio
    async def test_returns_immediately_when_condition_holds(self):
        probe = Probe(succeed_after=1)

        assert await wait_until(probe, timeout=1.0, interval=0.01) is True
        assert probe.calls == 1

    @pytest.mark.asyncio
    async def test_polls_until_condition_holds(self):
        probe = Probe(succeed_after=3)

        assert await wait_until(probe, timeout=1.0, interval=0.01) is True
        assert probe.calls == 3

    @pytest.mark.asyncio
    async def test_times_out(self):
        probe = Probe()

        result = await wait_until(probe, timeout=0.05, interval=0.01)

        assert result is False
        assert probe.calls >= 1

    @pytest.mark.asyncio
    async def test_zero_timeout_never_probes(self):
        probe = Probe(succeed_after=1)

        assert await wait_until(probe, timeout=0, interval=0.01) is False
        assert probe.calls == 0

    @pytest.mark.asyncio
    async def test_accepts_timedelta(self):
        probe = Probe(succeed_after=2)

        assert await wait_until(probe, timeout=timedelta(seconds=1), interval=0.01) is True

    @pytest.mark.asyncio
    async def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            await wait_until(Probe(), timeout=1.0, interval=0)

    @pytest.mark.asyncio
    async def test_probe_errors_propagate(self):
        probe = Probe(error=RuntimeError("backend exploded"))

        with pytest.raises(RuntimeError, match="backend exploded"):
            await wait_until(probe, timeout=1.0, interval=0.01)

    @pytest.mark.asyncio
    async def test_cancel_event_set_before_start(self):
        probe = Probe(succeed_after=1)
        cancel = asyncio.Event()
        cancel.set()

        assert await wait_until(probe, timeout=1.0, interval=0.01, cancel_event=cancel) is False
        assert probe.calls == 0

    @pytest.mark.asyncio
    async def test_cancel_event_interrupts_sleep(self):
        probe = Probe()
        cancel = asyncio.Event()

        async def cancel_soon():
            await asyncio.sleep(0.05)
            cancel.set()

        canceller = asyncio.create_task(cancel_soon())
        loop = asyncio.get_running_loop()
        started = loop.time()

        result = await wait_until(probe, timeout=10.0, interval=5.0, cancel_event=cancel)

        await canceller
        assert result is False
        assert loop.time() - started < 2.0

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self):
        waiter = asyncio.create_task(wait_until(Probe(), timeout=10.0, interval=0.01))
        await asyncio.sleep(0.03)
        waiter.cancel()

        with pytest.raises(asyncio.CancelledError):
            await waiter
