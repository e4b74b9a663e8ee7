"""Invoke helpers: call sync or async stages uniformly.

Middleware, handlers, hooks and error terminals can be ``def`` or
``async def``. Any code that calls a user-provided callable must handle
both cases. This module provides a single helper so the sync/async
check lives in exactly one place.

Usage::

    from wren._internal.invoke import invoke

    result = await invoke(handler, ctx)
"""

import inspect
from typing import Any


async def invoke(func: Any, *args: Any, **kwargs: Any) -> Any:
    """Call *func* and await the result if it's awaitable.

    Works with both sync and async callables::

        # sync: returns immediately
        def health(ctx):
            return {"ok": True}

        # async: the coroutine is awaited
        async def user(ctx):
            return await load_user(ctx.param("id"))
    """
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
