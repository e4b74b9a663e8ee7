"""Default terminals for unmatched requests and failed chains.

``default_not_found`` answers requests that matched no route.
``default_error`` is the error terminal a chain falls back to when the
app registers none: ``HTTPError`` subclasses keep their status and
headers; anything else becomes a generic 500.

``run_error_terminal`` is what the chain calls. It guarantees a
response even when a user-registered terminal itself raises.
"""

from __future__ import annotations

import logging
import traceback
from typing import TYPE_CHECKING, Any

from wren._internal.invoke import invoke
from wren.errors import HTTPError
from wren.http.response import JSON, Response
from wren.server.negotiation import dump_json

if TYPE_CHECKING:
    from wren._internal.types import ErrorHandler
    from wren.context import Context

logger = logging.getLogger("wren.server")

INTERNAL_ERROR_BODY = '{"error": "internal_server_error"}'


def default_not_found(ctx: Context) -> Response:
    """404 JSON body naming the method and path that did not match."""
    logger.debug("404 %s %s", ctx.method, ctx.path)
    payload = {"error": "not_found", "method": ctx.method, "path": ctx.path}
    return Response(body=dump_json(payload), status=404, content_type=JSON)


def default_error(error: BaseException, ctx: Context) -> Response:
    """Map *error* to a JSON response."""
    if isinstance(error, HTTPError):
        logger.debug("%d %s %s: %s", error.status, ctx.method, ctx.path, error.detail)
        return Response(
            body=dump_json(error.to_payload()),
            status=error.status,
            content_type=JSON,
            headers=error.headers,
        )

    logger.exception("500 %s %s", ctx.method, ctx.path, exc_info=error)
    if not ctx.config.debug:
        return internal_error_response()

    payload = {
        "error": "internal_server_error",
        "type": type(error).__name__,
        "detail": str(error),
        "traceback": traceback.format_exception(error),
    }
    return Response(body=dump_json(payload, indent=2), status=500, content_type=JSON)


def internal_error_response() -> Response:
    """Generic 500 body. Reveals nothing about the failure."""
    return Response(body=INTERNAL_ERROR_BODY, status=500, content_type=JSON)


async def run_error_terminal(
    handler: ErrorHandler | None,
    error: BaseException,
    ctx: Context,
) -> Any:
    """Invoke the error terminal; fall back to a generic 500 if it raises."""
    if handler is None:
        return default_error(error, ctx)
    try:
        return await invoke(handler, error, ctx)
    except Exception:
        logger.exception(
            "Error handler failed while handling %s for %s %s",
            type(error).__name__,
            ctx.method,
            ctx.path,
        )
        return internal_error_response()
