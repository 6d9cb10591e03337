"""
Timeout-bounded convergence polling
"""

import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

Timeout = Union[float, int, timedelta]


def to_seconds(timeout: Timeout) -> float:
    """Normalize a timeout given as seconds or timedelta"""
    if isinstance(timeout, timedelta):
        return timeout.total_seconds()
    return float(timeout)


async def _pause(delay: float, cancel_event: Optional[asyncio.Event]) -> bool:
    """Sleep for delay seconds; returns True if cancellation was requested meanwhile"""
    if cancel_event is None:
        await asyncio.sleep(delay)
        return False

    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return False
    return True


async def wait_until(
    probe: Callable[[], Awaitable[bool]],
    timeout: Timeout,
    interval: float,
    cancel_event: Optional[asyncio.Event] = None,
    description: str = "condition"
) -> bool:
    """
    Poll probe at a fixed interval until it returns True

    Returns True if the probe succeeds strictly before the timeout elapses,
    False on timeout or when cancel_event is set. Exceptions raised by the
    probe propagate unchanged.
    """
    if interval <= 0:
        raise ValueError("interval must be positive")

    loop = asyncio.get_running_loop()
    deadline = loop.time() + to_seconds(timeout)
    attempts = 0

    while loop.time() < deadline:
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Stopped waiting for {description}: cancelled after {attempts} polls")
            return False

        attempts += 1
        if await probe():
            logger.debug(f"{description} reached after {attempts} polls")
            return True

        remaining = deadline - loop.time()
        if remaining <= 0:
            break

        if await _pause(min(interval, remaining), cancel_event):
            logger.info(f"Stopped waiting for {description}: cancelled after {attempts} polls")
            return False

    logger.warning(f"Timed out waiting for {description} after {attempts} polls")
    return False
