"""Wren application class.

Mutable during setup (route registration, middleware, hooks).
Frozen at runtime when the first request or lifespan event arrives.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from wren._internal.asgi import Receive, Scope, Send
from wren._internal.invoke import invoke
from wren._internal.types import ErrorHandler, Handler, Hook, NotFoundHandler
from wren.config import AppConfig
from wren.context import Context, context_var
from wren.http.request import Request
from wren.http.response import AnyResponse
from wren.middleware.chain import (
    GLOBAL_PREFIX,
    Chain,
    MiddlewareEntry,
    build_chain,
    build_not_found_chain,
)
from wren.routing.pattern import compile_pattern, join_paths
from wren.routing.route import ANY_METHOD, Route, RouteMatch
from wren.routing.router import RouteTable, RouteTableBuilder
from wren.server.handler import handle_request
from wren.validation.facets import FacetValidator

logger = logging.getLogger("wren.server")

type Deliver = Callable[[AnyResponse], Awaitable[None]]


@dataclass(slots=True)
class _PendingRoute:
    """A route waiting to be compiled."""

    method: str
    path: str
    handler: Handler
    middleware: tuple[Callable[..., Any], ...]
    validators: tuple[FacetValidator, ...]
    name: str | None


class App:
    """The wren application.

    Mutable during setup (routes, middleware, hooks). Frozen when the
    first request or lifespan event arrives: the route table is built,
    every route's middleware chain is composed, and further registration
    raises ``RuntimeError``.

    Routes take their stages positionally, handler last::

        app.get("/users/:id", auth, validator("path", {"id": [integer]}), show_user)

    or, with no stages, return a decorator::

        @app.get("/health")
        def health(ctx):
            return {"ok": True}

    Thread safety:
        Setup is single-threaded (decorators at import time). The freeze
        transition uses a Lock + double-check so exactly one thread
        compiles the app, even when several ASGI workers deliver their
        first request concurrently.
    """

    __slots__ = (
        "_chains",
        "_error_handler",
        "_freeze_lock",
        "_frozen",
        "_middleware_entries",
        "_not_found_chain",
        "_not_found_handler",
        "_pending_routes",
        "_shutdown_hooks",
        "_startup_hooks",
        "_table",
        "config",
    )

    def __init__(self, config: AppConfig | None = None) -> None:
        self.config: AppConfig = config or AppConfig()
        self._pending_routes: list[_PendingRoute] = []
        self._middleware_entries: list[MiddlewareEntry] = []
        self._not_found_handler: NotFoundHandler | None = None
        self._error_handler: ErrorHandler | None = None
        self._startup_hooks: list[Hook] = []
        self._shutdown_hooks: list[Hook] = []
        self._frozen: bool = False
        self._freeze_lock: threading.Lock = threading.Lock()

        # Compiled state, set during _freeze()
        self._table: RouteTable | None = None
        self._chains: dict[Route, Chain] = {}
        self._not_found_chain: Chain | None = None

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "setup"
        return f"<App routes={len(self._pending_routes)} {state}>"

    # -- Route registration --

    def get(self, path: str, *stages: Callable[..., Any], **options: Any) -> Any:
        return self.on("GET", path, *stages, **options)

    def post(self, path: str, *stages: Callable[..., Any], **options: Any) -> Any:
        return self.on("POST", path, *stages, **options)

    def put(self, path: str, *stages: Callable[..., Any], **options: Any) -> Any:
        return self.on("PUT", path, *stages, **options)

    def patch(self, path: str, *stages: Callable[..., Any], **options: Any) -> Any:
        return self.on("PATCH", path, *stages, **options)

    def delete(self, path: str, *stages: Callable[..., Any], **options: Any) -> Any:
        return self.on("DELETE", path, *stages, **options)

    def head(self, path: str, *stages: Callable[..., Any], **options: Any) -> Any:
        return self.on("HEAD", path, *stages, **options)

    def options(self, path: str, *stages: Callable[..., Any], **options: Any) -> Any:
        return self.on("OPTIONS", path, *stages, **options)

    def all(self, path: str, *stages: Callable[..., Any], **options: Any) -> Any:
        """Register for every method. Priority is still registration order."""
        return self.on(ANY_METHOD, path, *stages, **options)

    def on(
        self,
        methods: str | Iterable[str],
        path: str,
        *stages: Callable[..., Any],
        middleware: Iterable[Callable[..., Any]] = (),
        name: str | None = None,
    ) -> Any:
        """Register *path* for one or more *methods*.

        With stages, the last one is the handler, ``FacetValidator``
        stages become the route's validators and the rest its middleware;
        the app is returned for chaining. Without stages, a decorator is
        returned that registers the decorated function as the handler.

        Raises ``PatternError`` for a malformed *path*.
        """
        self._check_not_frozen()
        method_list = [methods] if isinstance(methods, str) else list(methods)
        compile_pattern(path)
        extra = tuple(middleware)

        def register(handler: Handler, inner: tuple[Callable[..., Any], ...]) -> None:
            route_mw = (*extra, *(s for s in inner if not isinstance(s, FacetValidator)))
            validators = tuple(s for s in inner if isinstance(s, FacetValidator))
            for method in method_list:
                self._pending_routes.append(
                    _PendingRoute(
                        method=method.upper(),
                        path=path,
                        handler=handler,
                        middleware=route_mw,
                        validators=validators,
                        name=name,
                    )
                )

        if stages:
            register(stages[-1], stages[:-1])
            return self

        def decorator(func: Handler) -> Handler:
            self._check_not_frozen()
            register(func, ())
            return func

        return decorator

    # -- Middleware --

    def use(self, *args: Any) -> App:
        """Register middleware for every request or for a path prefix.

        ``app.use(mw)`` applies to every request, including unmatched
        ones. ``app.use("/api", mw1, mw2)`` (or ``"/api/*"``) applies to
        routes whose pattern lies under ``/api``. Entries run in
        registration order, global ones first.
        """
        self._check_not_frozen()
        if args and isinstance(args[0], str):
            prefix, middleware = args[0], args[1:]
        else:
            prefix, middleware = GLOBAL_PREFIX, args
        if not middleware:
            msg = "use() needs at least one middleware"
            raise TypeError(msg)
        for mw in middleware:
            self._middleware_entries.append(MiddlewareEntry.create(prefix, mw))
        return self

    def route(self, prefix: str, sub_app: App) -> App:
        """Mount *sub_app* under *prefix*.

        The sub-app's routes are registered here with *prefix* prepended,
        keeping their own middleware and validators. Its ``use()`` entries
        become entries scoped to the prefix; they run inside this app's
        own entries whatever the registration order. Its not-found and error
        terminals are not carried over: this app's terminals answer for
        mounted routes. Registrations made on *sub_app* after mounting
        are not seen.
        """
        self._check_not_frozen()
        compile_pattern(prefix)
        for pending in sub_app._pending_routes:
            self._pending_routes.append(
                _PendingRoute(
                    method=pending.method,
                    path=join_paths(prefix, pending.path),
                    handler=pending.handler,
                    middleware=pending.middleware,
                    validators=pending.validators,
                    name=pending.name,
                )
            )
        for entry in sub_app._middleware_entries:
            scoped = "/*" if entry.prefix == GLOBAL_PREFIX else entry.prefix
            self._middleware_entries.append(
                MiddlewareEntry.create(
                    join_paths(prefix, scoped), entry.middleware, depth=entry.depth + 1
                )
            )
        return self

    # -- Terminals --

    def not_found(self, handler: NotFoundHandler) -> NotFoundHandler:
        """Replace the not-found terminal. Usable as a decorator.

        Receives the context; the last registration wins.
        """
        self._check_not_frozen()
        self._not_found_handler = handler
        return handler

    def on_error(self, handler: ErrorHandler) -> ErrorHandler:
        """Replace the error terminal. Usable as a decorator.

        Receives ``(error, ctx)``; the last registration wins. If it
        raises, a generic 500 response is sent instead.
        """
        self._check_not_frozen()
        self._error_handler = handler
        return handler

    # -- Lifecycle hooks --

    def on_startup(self, func: Hook) -> Hook:
        """Register an async or sync startup hook via decorator.

        Hooks run in registration order during ASGI lifespan startup.
        """
        self._check_not_frozen()
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Hook) -> Hook:
        """Register an async or sync shutdown hook via decorator."""
        self._check_not_frozen()
        self._shutdown_hooks.append(func)
        return func

    # -- Introspection --

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def routes(self) -> tuple[Route, ...]:
        """Compiled routes in registration order. Freezes the app."""
        self._ensure_frozen()
        assert self._table is not None
        return self._table.routes

    def chain_for(self, route: Route) -> Chain:
        """The precomputed chain for *route*."""
        self._ensure_frozen()
        return self._chains[route]

    # -- Dispatch --

    def match(self, method: str, path: str) -> RouteMatch | None:
        """Resolve a request line, applying the HEAD-to-GET fallback."""
        self._ensure_frozen()
        assert self._table is not None
        found = self._table.match(method, path)
        if found is None and method.upper() == "HEAD" and self.config.head_fallback:
            found = self._table.match("GET", path)
        return found

    async def dispatch(self, request: Request, *, deliver: Deliver | None = None) -> AnyResponse:
        """Run *request* through its chain and return the finalized response.

        *deliver*, when given, is awaited with the response before the
        context's cleanup callbacks run; the ASGI adapter sends the
        response there.
        """
        found = self.match(request.method, request.path)
        if found is None:
            ctx = Context(request, config=self.config, not_found=self._not_found_handler)
            chain = self._not_found_chain
        else:
            ctx = Context(
                request.with_path_params(found.params),
                config=self.config,
                not_found=self._not_found_handler,
            )
            chain = self._chains[found.route]
        assert chain is not None

        token = context_var.set(ctx)
        try:
            response = await chain.run(ctx)
            if deliver is not None:
                await deliver(response)
            return response
        finally:
            await ctx.close()
            context_var.reset(token)

    # -- ASGI interface --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point.

        Handles the lifespan scope directly, then delegates HTTP scopes
        to the request handler.
        """
        if scope["type"] == "lifespan":
            await self._handle_lifespan(scope, receive, send)
            return

        self._ensure_frozen()
        await handle_request(scope, receive, send, app=self)

    async def _handle_lifespan(
        self,
        scope: Scope,
        receive: Receive,
        send: Send,
    ) -> None:
        """Run the ASGI lifespan protocol.

        Freezes the app at startup (before the first HTTP request), then
        runs registered startup/shutdown hooks and signals completion
        back to the server.
        """
        try:
            self._ensure_frozen()
        except Exception as exc:
            logger.exception("App failed to freeze")
            await receive()
            await send({"type": "lifespan.startup.failed", "message": str(exc)})
            return

        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    for hook in self._startup_hooks:
                        await invoke(hook)
                except Exception as exc:
                    logger.exception("Startup hook failed")
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})

            elif msg_type == "lifespan.shutdown":
                try:
                    for hook in self._shutdown_hooks:
                        await invoke(hook)
                except Exception as exc:
                    logger.exception("Shutdown hook failed")
                    await send({"type": "lifespan.shutdown.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.shutdown.complete"})
                return

    # -- Internal --

    def _ensure_frozen(self) -> None:
        """Thread-safe freeze with double-check locking."""
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()

    def _freeze(self) -> None:
        """Compile the app into its frozen runtime state.

        MUST only be called while holding _freeze_lock.
        """
        # 1. Route table
        builder = RouteTableBuilder()
        for pending in self._pending_routes:
            builder.add(
                pending.method,
                pending.path,
                handler=pending.handler,
                middleware=pending.middleware,
                validators=pending.validators,
                name=pending.name,
            )
        table = builder.build()

        # 2. One chain per route, plus the not-found chain
        entries = tuple(self._middleware_entries)
        self._chains = {
            route: build_chain(route, entries, on_error=self._error_handler)
            for route in table.routes
        }
        self._not_found_chain = build_not_found_chain(
            entries, self._not_found_handler, on_error=self._error_handler
        )
        self._table = table
        self._frozen = True
        logger.debug(
            "App frozen: %d routes, %d middleware entries", len(table), len(entries)
        )

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                "Cannot modify the app after it has started serving requests. "
                "Register routes, middleware, and hooks before the first request."
            )
            raise RuntimeError(msg)
