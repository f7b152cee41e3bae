# attackbench/utils/async_helpers.py
"""
Async utilities for safe task management.
"""

import asyncio
import logging
from typing import Any, Coroutine, Optional

logger = logging.getLogger(__name__)


def create_safe_task(
    coro: Coroutine[Any, Any, Any],
    name: Optional[str] = None,
    log_errors: bool = True
) -> asyncio.Task:
    """
    Create an asyncio task with automatic error handling.

    Fire-and-forget tasks otherwise swallow their exceptions until the task
    object is garbage collected.

    Example:
        # Instead of: asyncio.create_task(manager.run_session(...))
        # Use: create_safe_task(manager.run_session(...), name="attack-7")
    """
    task = asyncio.create_task(coro, name=name)

    def _handle_exception(t: asyncio.Task):
        if t.cancelled():
            return
        exc = t.exception()
        if exc and log_errors:
            task_name = name or t.get_name()
            logger.error(f"[AsyncTask:{task_name}] Unhandled exception: {exc}", exc_info=exc)

    task.add_done_callback(_handle_exception)
    return task


async def run_periodically(
    interval: float,
    func,
    *args,
    name: Optional[str] = None,
) -> None:
    """
    Call ``func(*args)`` every ``interval`` seconds until cancelled.

    Exceptions from one call are logged and the loop keeps going.
    """
    task_name = name or getattr(func, "__name__", "periodic")
    while True:
        await asyncio.sleep(interval)
        try:
            result = func(*args)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.error(f"[AsyncTask:{task_name}] Periodic call failed: {e}", exc_info=e)
