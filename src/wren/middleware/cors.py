"""Cross-origin resource sharing.

Install globally so a preflight for a path that has no ``OPTIONS`` route
is still answered::

    app.use(CORSMiddleware(CORSConfig(allow_origins=("https://example.com",))))
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from wren.http.response import Response
from wren.middleware.protocol import Next

if TYPE_CHECKING:
    from wren.context import Context


@dataclass(frozen=True, slots=True)
class CORSConfig:
    """Which origins, methods and headers are shared.

    The defaults allow no origin at all. ``"*"`` in ``allow_origins``
    admits any origin; with credentials enabled the caller's origin is
    echoed back instead of the wildcard.
    """

    allow_origins: tuple[str, ...] = ()
    allow_methods: tuple[str, ...] = ("GET", "HEAD", "OPTIONS")
    allow_headers: tuple[str, ...] = ()
    expose_headers: tuple[str, ...] = ()
    allow_credentials: bool = False
    max_age: int = 600

    def admits(self, origin: str) -> bool:
        return "*" in self.allow_origins or origin in self.allow_origins


class CORSMiddleware:
    """Answer preflights with 204 and decorate other responses.

    A request is a preflight when it is ``OPTIONS`` and carries
    ``Access-Control-Request-Method``; plain ``OPTIONS`` requests are
    routed normally. Requests with no ``Origin``, or an origin the
    config does not admit, are left alone.
    """

    __slots__ = ("config",)

    def __init__(self, config: CORSConfig | None = None) -> None:
        self.config = config or CORSConfig()

    def shared_headers(self, origin: str) -> list[tuple[str, str]]:
        """Headers common to preflight and actual responses."""
        cfg = self.config
        if "*" in cfg.allow_origins and not cfg.allow_credentials:
            pairs = [("Access-Control-Allow-Origin", "*")]
        else:
            pairs = [("Access-Control-Allow-Origin", origin), ("Vary", "Origin")]
        if cfg.allow_credentials:
            pairs.append(("Access-Control-Allow-Credentials", "true"))
        if cfg.expose_headers:
            pairs.append(("Access-Control-Expose-Headers", ", ".join(cfg.expose_headers)))
        return pairs

    def preflight(self, origin: str) -> Response:
        cfg = self.config
        pairs = self.shared_headers(origin)
        pairs.append(("Access-Control-Allow-Methods", ", ".join(cfg.allow_methods)))
        if cfg.allow_headers:
            pairs.append(("Access-Control-Allow-Headers", ", ".join(cfg.allow_headers)))
        pairs.append(("Access-Control-Max-Age", str(cfg.max_age)))
        return Response(status=204, headers=tuple(pairs))

    async def __call__(self, ctx: Context, next: Next) -> Response | None:
        origin = ctx.headers.get("origin")
        if origin is not None and self.config.admits(origin):
            if ctx.method == "OPTIONS" and "access-control-request-method" in ctx.headers:
                return self.preflight(origin)
            await next()
            for name, value in self.shared_headers(origin):
                # Vary may already name other headers
                ctx.set_header(name, value, append=name == "Vary")
        else:
            await next()
        return None
