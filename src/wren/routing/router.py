"""Ordered route table with registration-order matching.

Routes are added to a ``RouteTableBuilder`` during setup. ``build()``
consumes the builder and returns an immutable ``RouteTable``; the table
has no mutating methods, so concurrent requests can match against it
without locks.

Matching scans the routes for the request method in registration order
and returns the first one whose pattern consumes the whole path. There
is no longest-prefix or specificity ranking: ``/users/:id`` registered
before ``/users/me`` matches ``/users/me`` with ``id="me"``.
"""

import logging
from collections.abc import Callable, Iterable
from types import MappingProxyType
from typing import Any

from wren.routing.pattern import compile_pattern, split_path
from wren.routing.route import ANY_METHOD, Route, RouteMatch

logger = logging.getLogger("wren.routing")


class RouteTable:
    """An immutable, per-method ordered route table.

    Usage::

        builder = RouteTableBuilder()
        builder.add("GET", "/users/:id", handler=show_user)
        table = builder.build()
        match = table.match("GET", "/users/42")
    """

    __slots__ = ("_any", "_by_method", "_routes")

    def __init__(self, routes: Iterable[Route]) -> None:
        ordered = tuple(routes)
        methods = {route.method for route in ordered if route.method != ANY_METHOD}
        any_routes = tuple(route for route in ordered if route.method == ANY_METHOD)
        by_method = {
            method: tuple(r for r in ordered if r.method in (method, ANY_METHOD))
            for method in methods
        }
        object.__setattr__(self, "_routes", ordered)
        object.__setattr__(self, "_any", any_routes)
        object.__setattr__(self, "_by_method", MappingProxyType(by_method))

    def __setattr__(self, name: str, value: object) -> None:
        msg = "RouteTable is immutable"
        raise AttributeError(msg)

    def __len__(self) -> int:
        return len(self._routes)

    @property
    def routes(self) -> tuple[Route, ...]:
        """Every route, in registration order."""
        return self._routes

    @property
    def methods(self) -> frozenset[str]:
        """Methods with at least one method-specific route."""
        return frozenset(self._by_method)

    def routes_for(self, method: str) -> tuple[Route, ...]:
        """Candidate routes for *method*, in registration order."""
        return self._by_method.get(method.upper(), self._any)

    def match(self, method: str, path: str) -> RouteMatch | None:
        """Resolve *method* and *path* to the first matching route.

        Returns ``None`` when nothing matches (including a method with no
        routes at all).
        """
        candidates = self.routes_for(method)
        if not candidates:
            return None
        parts = split_path(path)
        for route in candidates:
            params = route.pattern.match(parts)
            if params is not None:
                return RouteMatch(route=route, params=params)
        return None


class RouteTableBuilder:
    """Collects routes during setup and produces a ``RouteTable`` once.

    Patterns are compiled in ``add()``, so a malformed pattern fails at
    registration time with ``PatternError``.
    """

    __slots__ = ("_built", "_routes")

    def __init__(self) -> None:
        self._routes: list[Route] = []
        self._built = False

    def add(
        self,
        method: str,
        pattern: str,
        *,
        handler: Callable[..., Any],
        middleware: Iterable[Callable[..., Any]] = (),
        validators: Iterable[Callable[..., Any]] = (),
        name: str | None = None,
    ) -> Route:
        """Compile *pattern* and append a route for *method*."""
        self._check_not_built()
        route = Route(
            method=method.upper(),
            pattern=compile_pattern(pattern),
            handler=handler,
            middleware=tuple(middleware),
            validators=tuple(validators),
            name=name,
        )
        self._routes.append(route)
        logger.debug("Registered %s %s", route.method, pattern)
        return route

    def build(self) -> RouteTable:
        """Consume the builder and return the immutable table."""
        self._check_not_built()
        self._built = True
        table = RouteTable(self._routes)
        self._routes = []
        logger.debug("Route table built with %d routes", len(table))
        return table

    def _check_not_built(self) -> None:
        if self._built:
            msg = "RouteTableBuilder was already consumed by build()."
            raise RuntimeError(msg)
