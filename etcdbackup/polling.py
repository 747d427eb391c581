# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Bounded polling shared by service waits and cluster health checks.
"""

import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable

import structlog

logger = structlog.get_logger()

Probe = Callable[[], Any]
Sleep = Callable[[float], Awaitable[None]]


async def poll_until(
    probe: Probe,
    *,
    interval: float,
    timeout: float,
    sleep: Sleep = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
    label: str = "poll",
) -> bool:
    """
    Call probe until it returns truthy or the deadline passes.

    The probe runs at least once; between attempts the helper sleeps
    `interval` seconds, never past the deadline.

    Args:
        probe: Sync or async callable returning a truthy value on success
        interval: Seconds between attempts
        timeout: Hard ceiling in seconds
        sleep: Awaitable sleep (injectable for tests)
        clock: Monotonic clock (injectable for tests)
        label: Name used in log events

    Returns:
        True if the probe succeeded before the deadline, False otherwise
    """
    deadline = clock() + timeout
    attempts = 0

    while True:
        attempts += 1
        result = probe()
        if inspect.isawaitable(result):
            result = await result
        if result:
            logger.debug("poll_succeeded", label=label, attempts=attempts)
            return True

        remaining = deadline - clock()
        if remaining <= 0:
            logger.debug("poll_timed_out", label=label, attempts=attempts)
            return False

        await sleep(min(interval, remaining))
