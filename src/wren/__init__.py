"""Wren: a minimal asynchronous HTTP framework core.

Routes map a method and a path pattern to a handler; middleware wraps
handlers in an onion-style chain; validators check request facets
before the handler runs.

Basic usage::

    from wren import App

    app = App()

    @app.get("/users/:id")
    async def show_user(ctx):
        return ctx.json({"id": ctx.param("id")})

Serve it with any ASGI server (``uvicorn module:app``).
"""

import importlib

__version__ = "0.1.0"
__all__ = [
    "AnyResponse",
    "App",
    "AppConfig",
    "ClientDisconnect",
    "ConfigurationError",
    "Context",
    "HTTPError",
    "Key",
    "Middleware",
    "Next",
    "NotFound",
    "PatternError",
    "Redirect",
    "Request",
    "Response",
    "StreamingResponse",
    "ValidationError",
    "WrenError",
    "get_context",
    "validator",
]


# Public name -> module that defines it
_LAZY_IMPORTS: dict[str, str] = {
    "App": "wren.app",
    "AppConfig": "wren.config",
    "Request": "wren.http.request",
    "AnyResponse": "wren.http.response",
    "Redirect": "wren.http.response",
    "Response": "wren.http.response",
    "StreamingResponse": "wren.http.response",
    "Middleware": "wren.middleware.protocol",
    "Next": "wren.middleware.protocol",
    "Context": "wren.context",
    "Key": "wren.context",
    "get_context": "wren.context",
    "validator": "wren.validation.facets",
    "ClientDisconnect": "wren.errors",
    "ConfigurationError": "wren.errors",
    "HTTPError": "wren.errors",
    "NotFound": "wren.errors",
    "PatternError": "wren.errors",
    "ValidationError": "wren.errors",
    "WrenError": "wren.errors",
}


def __getattr__(name: str) -> object:
    """Resolve public names on first access.

    Keeps ``import wren`` cheap: nothing below the package is imported
    until a name is used.
    """
    module_name = _LAZY_IMPORTS.get(name)
    if module_name is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)
    return getattr(importlib.import_module(module_name), name)
