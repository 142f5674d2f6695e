"""Fire-and-forget device calls whose failures are logged, never raised."""

import asyncio
import logging
from typing import Awaitable, Optional, Set

from errors import DeviceCommunicationError

logger = logging.getLogger(__name__)


def spawn(
    coro: Awaitable,
    tasks: Set[asyncio.Task],
    description: str,
    owner: str = "",
) -> asyncio.Task:
    """
    Run ``coro`` as a task tracked in ``tasks``.
    The task removes itself from ``tasks`` when done and logs any failure.
    """
    task = asyncio.ensure_future(coro)
    tasks.add(task)

    def _done(t: asyncio.Task):
        tasks.discard(t)
        if t.cancelled():
            return
        exc: Optional[BaseException] = t.exception()
        if exc is None:
            return
        if isinstance(exc, DeviceCommunicationError):
            logger.warning(f"[{owner}] Failed to {description}: {exc}")
        else:
            logger.error(f"[{owner}] Unexpected error during {description}: {exc!r}", exc_info=exc)

    task.add_done_callback(_done)
    return task


def cancel_all(tasks: Set[asyncio.Task]) -> None:
    for task in list(tasks):
        task.cancel()
    tasks.clear()
