"""Event-loop helpers for the async read paths.

Store calls are synchronous SQLAlchemy and may wait on a database lock, so
async code runs them in the default executor. Concurrent provider calls are
cancelled together when one of them fails.
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Awaitable, Callable, List, TypeVar

T = TypeVar("T")


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking call in the default executor and await its result."""
    return await asyncio.get_running_loop().run_in_executor(
        None,
        functools.partial(func, *args, **kwargs),
    )


async def gather_or_cancel(*awaitables: Awaitable[Any]) -> List[Any]:
    """Like ``asyncio.gather`` but no sibling outlives the call.

    When one awaitable raises (or the caller is cancelled) the others are
    cancelled and awaited before the exception propagates.
    """
    tasks = [asyncio.ensure_future(aw) for aw in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    finally:
        pending = [t for t in tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
