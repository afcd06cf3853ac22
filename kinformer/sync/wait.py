"""
Waiting helpers: the startup sync barrier and a periodic runner.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from ..errors import SyncTimeoutError

logger = logging.getLogger(__name__)


async def wait_for_cache_sync(
    stop_event: asyncio.Event,
    has_synced: Sequence[Callable[[], bool]],
    timeout: Optional[float] = None,
    poll_interval: float = 0.1,
    tasks: Sequence[asyncio.Task] = ()
) -> None:
    """
    Block until every ``has_synced`` check passes.

    Args:
        tasks: Tasks running the caches; one ending before the barrier
            passes aborts the wait

    Raises:
        SyncTimeoutError: If ``stop_event`` is set, ``timeout`` expires or a
            cache task ends first
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout is not None else None
    stopped = asyncio.ensure_future(stop_event.wait())

    try:
        while not all(check() for check in has_synced):
            for task in tasks:
                if task.done():
                    error = None if task.cancelled() else task.exception()
                    raise SyncTimeoutError(
                        f"cache stopped before it synced: {error or 'exited'}"
                    ) from error

            if stop_event.is_set():
                raise SyncTimeoutError("stopped while waiting for caches to sync")

            delay = poll_interval
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    pending = sum(1 for check in has_synced if not check())
                    raise SyncTimeoutError(
                        f"timed out waiting for caches to sync ({pending}/{len(has_synced)} pending)"
                    )
                delay = min(delay, remaining)

            await asyncio.wait([stopped, *tasks], timeout=delay, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stopped.cancel()


async def until(
    fn: Callable[[], Awaitable[None]],
    period: float,
    stop_event: asyncio.Event
) -> None:
    """
    Run ``fn`` repeatedly, at least ``period`` seconds apart, until stopped.

    Errors from ``fn`` are logged and the loop continues with the next period.
    """
    while not stop_event.is_set():
        try:
            await fn()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Periodic task failed: {e}")

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=period)
        except asyncio.TimeoutError:
            pass
