"""
Background task helpers for the app lifecycle.

- ``run_periodic`` drives maintenance loops (session sweep, rate-limit
  sweep, SSE heartbeat).  A failing tick is logged and the loop keeps
  going; only cancellation stops it.
- ``spawn`` starts a fire-and-forget task whose failure is logged by a
  done-callback instead of being lost.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Coroutine

logger = logging.getLogger(__name__)


async def run_periodic(
    name: str,
    interval: float,
    tick: Callable[[], Any],
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> None:
    """Call ``tick`` every ``interval`` seconds until cancelled."""
    logger.info("[%s] loop started (every %.0fs)", name, interval)
    while True:
        await sleep(interval)
        try:
            result = tick()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("[%s] tick failed", name)


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background task %s failed", task.get_name(), exc_info=exc)


def spawn(coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
    task = asyncio.create_task(coro, name=name)
    task.add_done_callback(_log_task_failure)
    return task
