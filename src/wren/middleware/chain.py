"""Middleware chain executor.

A ``Chain`` is the ordered list of stages one route runs: global
middleware, prefix-scoped middleware, route middleware, validators and
finally the handler. Chains are built once when the app freezes and
reused for every request to that route.

Each stage receives the context and a ``next`` callable that runs the
following stage. Code before ``await next()`` runs outer to inner, code
after it runs inner to outer. A stage that returns without calling
``next()`` short-circuits everything after it.

Exceptions escaping any stage are caught once, at the chain boundary,
and handed to the error terminal. ``asyncio.CancelledError`` and
``ClientDisconnect`` are never converted.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from wren._internal.invoke import invoke
from wren.errors import ChainProtocolError, ClientDisconnect, HandlerError
from wren.http.response import AnyResponse
from wren.routing.pattern import RoutePattern, ancestor_segments, compile_pattern, is_ancestor
from wren.server.errors import default_not_found, internal_error_response, run_error_terminal
from wren.validation.facets import order_validators

if TYPE_CHECKING:
    from wren._internal.types import ErrorHandler, Handler, NotFoundHandler
    from wren.context import Context
    from wren.routing.route import Route

logger = logging.getLogger("wren.middleware")

# Prefix that applies middleware to every request
GLOBAL_PREFIX = "*"

type Stage = Callable[..., Any]


@dataclass(frozen=True, slots=True)
class MiddlewareEntry:
    """A middleware registered with ``app.use()``, scoped by path prefix.

    ``depth`` counts the mounts the entry was imported through; 0 for
    entries registered on the app itself.
    """

    prefix: str
    middleware: Stage
    pattern: RoutePattern | None = None
    depth: int = 0

    @classmethod
    def create(cls, prefix: str, middleware: Stage, *, depth: int = 0) -> MiddlewareEntry:
        """Compile *prefix* (``*`` means global). Raises ``PatternError``."""
        if prefix == GLOBAL_PREFIX:
            return cls(prefix=prefix, middleware=middleware, depth=depth)
        pattern = compile_pattern(prefix)
        return cls(prefix=prefix, middleware=middleware, pattern=pattern, depth=depth)

    @property
    def is_global(self) -> bool:
        """True for ``*`` and for prefixes that cover every path (``/``, ``/*``)."""
        return self.pattern is None or not ancestor_segments(self.pattern)

    def applies_to(self, route: RoutePattern) -> bool:
        if self.pattern is None:
            return True
        return is_ancestor(self.pattern, route)


class Chain:
    """An immutable, precomputed sequence of stages ending in a terminal."""

    __slots__ = ("_on_error", "_stages", "name")

    def __init__(
        self,
        stages: Iterable[Stage],
        *,
        on_error: ErrorHandler | None = None,
        name: str = "",
    ) -> None:
        self._stages: tuple[Stage, ...] = tuple(stages)
        self._on_error = on_error
        self.name = name

    def __len__(self) -> int:
        return len(self._stages)

    def __repr__(self) -> str:
        return f"<Chain {self.name or '?'} stages={len(self._stages)}>"

    @property
    def stages(self) -> tuple[Stage, ...]:
        return self._stages

    async def run(self, ctx: Context) -> AnyResponse:
        """Run every stage against *ctx* and return the finalized response.

        Always returns a response unless the task is cancelled or the
        client disconnects mid-body.
        """
        try:
            await self._run_stage(0, ctx)
            if not ctx.responded:
                msg = f"No stage produced a response for {ctx.method} {ctx.path}"
                raise HandlerError(msg)
        except (asyncio.CancelledError, ClientDisconnect):
            logger.debug("Request abandoned: %s %s", ctx.method, ctx.path)
            raise
        except Exception as exc:
            await self._handle_error(exc, ctx)
        return ctx.finalize()

    async def _run_stage(self, index: int, ctx: Context) -> None:
        if index >= len(self._stages):
            return
        stage = self._stages[index]
        called = False

        async def next_() -> AnyResponse:
            nonlocal called
            if called:
                msg = f"next() called more than once by {_stage_name(stage)}"
                raise ChainProtocolError(msg)
            called = True
            await self._run_stage(index + 1, ctx)
            return ctx.response

        result = await invoke(stage, ctx, next_)
        if result is not None:
            ctx.absorb(result)

    async def _handle_error(self, exc: Exception, ctx: Context) -> None:
        ctx._reset_response()
        ctx.error = exc
        result = await run_error_terminal(self._on_error, exc, ctx)
        try:
            ctx.absorb(result)
        except Exception:
            logger.exception("Error handler returned an unusable value for %s", ctx.path)
            ctx._reset_response()
            ctx.absorb(internal_error_response())


def handler_stage(handler: Handler) -> Stage:
    """Adapt a ``handler(ctx)`` callable to the stage signature."""

    async def terminal(ctx: Context, next: Any) -> Any:
        return await invoke(handler, ctx)

    terminal.__name__ = getattr(handler, "__name__", "handler")
    return terminal


def not_found_stage(not_found: NotFoundHandler | None) -> Stage:
    """Terminal stage for requests no route matched."""
    return handler_stage(not_found or default_not_found)


def build_chain(
    route: Route,
    entries: Sequence[MiddlewareEntry],
    *,
    on_error: ErrorHandler | None = None,
) -> Chain:
    """Compose the chain for *route*.

    Order: global middleware, then prefix-scoped middleware whose prefix
    covers the route pattern, then the route's own middleware, then its
    validators grouped by facet, then the handler. Within the global and
    scoped groups an app's own entries come before entries imported from
    a mounted sub-app; otherwise registration order holds.
    """
    global_mw = _by_depth(e for e in entries if e.is_global)
    scoped_mw = _by_depth(e for e in entries if not e.is_global and e.applies_to(route.pattern))
    stages: list[Stage] = [
        *global_mw,
        *scoped_mw,
        *route.middleware,
        *order_validators(route.validators),
        handler_stage(route.handler),
    ]
    return Chain(stages, on_error=on_error, name=f"{route.method} {route.path}")


def build_not_found_chain(
    entries: Sequence[MiddlewareEntry],
    not_found: NotFoundHandler | None = None,
    *,
    on_error: ErrorHandler | None = None,
) -> Chain:
    """Compose the chain for unmatched requests: global middleware only."""
    stages = _by_depth(e for e in entries if e.is_global)
    stages.append(not_found_stage(not_found))
    return Chain(stages, on_error=on_error, name="not-found")


def _by_depth(entries: Iterable[MiddlewareEntry]) -> list[Stage]:
    # Stable sort: registration order holds within one depth
    return [e.middleware for e in sorted(entries, key=lambda e: e.depth)]


def _stage_name(stage: Stage) -> str:
    return getattr(stage, "__name__", None) or type(stage).__name__
