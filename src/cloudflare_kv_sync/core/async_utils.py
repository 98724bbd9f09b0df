"""Async utilities for running blocking HTTP and file I/O from the engine."""

import asyncio
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    The sync engine awaits every remote call and document write through
    this helper, one at a time, so the event loop stays free for the
    debounce timers while a request is in flight.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        result = await run_sync(client.put, "blog/post-1", body)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
