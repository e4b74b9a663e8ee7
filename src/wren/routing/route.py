"""Route and RouteMatch frozen dataclasses."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from wren.routing.pattern import RoutePattern

# Method key for routes registered with ``all()``
ANY_METHOD = "*"


@dataclass(frozen=True, slots=True, eq=False)
class Route:
    """A frozen route definition.

    Created at registration time and never mutated afterwards. Compared
    by identity: two registrations of the same pattern are two routes.
    """

    method: str
    pattern: RoutePattern
    handler: Callable[..., Any]
    middleware: tuple[Callable[..., Any], ...] = ()
    validators: tuple[Callable[..., Any], ...] = ()
    name: str | None = None

    @property
    def path(self) -> str:
        """The pattern source string, e.g. ``/users/:id``."""
        return self.pattern.source

    def __repr__(self) -> str:
        return f"Route({self.method} {self.pattern.source})"


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of a successful route match. Owned by one request."""

    route: Route
    params: dict[str, str]
