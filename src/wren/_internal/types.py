"""Shared type aliases used across wren modules."""

from collections.abc import Callable
from typing import Any, TypeAlias

# Route handler: receives the Context, returns a response value
Handler: TypeAlias = Callable[..., Any]

# Error terminal: receives (error, ctx) and returns a response value
ErrorHandler: TypeAlias = Callable[..., Any]

# Not-found terminal: receives ctx and returns a response value
NotFoundHandler: TypeAlias = Callable[..., Any]

# Lifecycle hook: no arguments, sync or async
Hook: TypeAlias = Callable[[], Any]
