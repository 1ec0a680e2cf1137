"""Async utilities for running blocking exchange calls off the event loop."""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        report = await run_sync(exchange.get_sync_report, request)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def gather_fail_fast(
    coros: Sequence[Coroutine[Any, Any, T]],
) -> list[T]:
    """Run coroutines concurrently; the first failure cancels the rest.

    Results are returned in input order.  If any coroutine raises, every
    still-pending task is cancelled and the first exception propagates.
    If the caller is cancelled, all tasks are cancelled too.

    Args:
        coros: Sequence of coroutines to run concurrently.

    Returns:
        List of results in the same order as input coroutines.
    """
    if not coros:
        return []
    tasks = [asyncio.ensure_future(coro) for coro in coros]
    try:
        done, _ = await asyncio.wait(
            tasks, return_when=asyncio.FIRST_EXCEPTION
        )
        # Retrieve every finished exception so none is reported as unhandled.
        errors = [
            task.exception()
            for task in tasks
            if task in done and not task.cancelled()
        ]
        first = next((exc for exc in errors if exc is not None), None)
        if first is not None:
            raise first
        return [task.result() for task in tasks]
    finally:
        pending_tasks = [task for task in tasks if not task.done()]
        for task in pending_tasks:
            task.cancel()
        if pending_tasks:
            logger.debug("Cancelled %d pending task(s)", len(pending_tasks))
            await asyncio.gather(*pending_tasks, return_exceptions=True)
