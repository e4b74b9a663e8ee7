"""Routing: compiled patterns and an ordered, immutable route table.

Routes are registered during setup through ``RouteTableBuilder`` and
frozen into a ``RouteTable`` before the app serves its first request.
"""

from wren.routing.pattern import RoutePattern, compile_pattern
from wren.routing.route import Route, RouteMatch
from wren.routing.router import RouteTable, RouteTableBuilder

__all__ = [
    "Route",
    "RouteMatch",
    "RoutePattern",
    "RouteTable",
    "RouteTableBuilder",
    "compile_pattern",
]
