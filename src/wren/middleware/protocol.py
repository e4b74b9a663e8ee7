"""Middleware protocol and Next type alias.

A middleware is any callable matching::

    async def my_mw(ctx: Context, next: Next) -> AnyResponse | None: ...

No base class required. Sync callables are accepted too.

``next()`` takes no arguments: the request travels on the context. It
runs the rest of the chain and returns a snapshot of the response built
so far. A middleware either returns ``None`` (the context already holds
the response), or a value that replaces it: a ``Response``, a
``StreamingResponse``, or anything content negotiation understands.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Protocol

from wren.http.response import AnyResponse

if TYPE_CHECKING:
    from wren.context import Context

# The rest of the chain
type Next = Callable[[], Awaitable[AnyResponse]]


class Middleware(Protocol):
    """Protocol for wren middleware.

    Accepts both functions and callable objects::

        # Function middleware
        async def timing(ctx: Context, next: Next) -> AnyResponse:
            start = time.monotonic()
            response = await next()
            elapsed = time.monotonic() - start
            return response.with_header("X-Time", f"{elapsed:.3f}")

        # Class middleware
        class RateLimiter:
            async def __call__(self, ctx: Context, next: Next) -> AnyResponse | None:
                ...
    """

    async def __call__(self, ctx: Context, next: Next) -> Any: ...
