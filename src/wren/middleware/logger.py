"""Request logging middleware.

Logs one line per request on the ``wren.middleware`` logger and adds an
``X-Response-Time`` header. Wren never configures logging handlers;
attach one in the host to see the output.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from wren.middleware.protocol import Next

if TYPE_CHECKING:
    from wren.context import Context

logger = logging.getLogger("wren.middleware")


class RequestLogger:
    """Log method, path, status and elapsed time.

    Usage::

        app.use(RequestLogger())

    Errors raised by later stages are logged and re-raised to the chain
    boundary, which turns them into the error response.
    """

    __slots__ = ("header", "level")

    def __init__(self, *, level: int = logging.INFO, header: str | None = "X-Response-Time") -> None:
        self.level = level
        self.header = header

    async def __call__(self, ctx: Context, next: Next) -> None:
        start = time.perf_counter()
        try:
            response = await next()
        except Exception:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.log(self.level, "%s %s -> error (%.1fms)", ctx.method, ctx.path, elapsed_ms)
            raise
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.log(
            self.level,
            "%s %s -> %d (%.1fms)",
            ctx.method,
            ctx.path,
            response.status,
            elapsed_ms,
        )
        if self.header:
            ctx.set_header(self.header, f"{elapsed_ms:.1f}ms")
