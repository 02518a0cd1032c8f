"""
Best-effort side effects.

A best-effort task is awaited with a bounded timeout and can never fail the
operation that spawned it: exceptions and timeouts are logged and reported as
``False``. Notification dispatch is the main user; the caller decides what a
``False`` means (usually nothing beyond the log line).
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Mapping

from shared.logging import get_logger

log = get_logger(__name__)


async def run_best_effort(name: str, awaitable: Awaitable[bool], timeout: float) -> bool:
    """Await *awaitable* for at most *timeout* seconds.

    Returns the awaited value coerced to ``bool``, or ``False`` on timeout or
    any exception. Cancellation of the caller still propagates.
    """
    try:
        return bool(await asyncio.wait_for(awaitable, timeout=timeout))
    except asyncio.TimeoutError:
        log.warning("best_effort_timeout", task=name, timeout_seconds=timeout)
        return False
    except Exception as e:
        log.error(
            "best_effort_failed",
            task=name,
            error=str(e),
            error_type=type(e).__name__,
        )
        return False


async def gather_best_effort(
    tasks: Mapping[str, Awaitable[bool]], timeout: float
) -> dict[str, bool]:
    """Run several best-effort tasks concurrently and join them.

    Args:
        tasks: Task name → awaitable returning a success flag.
        timeout: Per-task timeout in seconds.

    Returns:
        Task name → success flag, in the order of *tasks*.
    """
    names = list(tasks)
    results = await asyncio.gather(
        *(run_best_effort(name, tasks[name], timeout) for name in names)
    )
    return dict(zip(names, results))
