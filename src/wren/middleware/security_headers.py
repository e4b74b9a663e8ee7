"""Security headers middleware: X-Frame-Options, X-Content-Type-Options, Referrer-Policy.

Adds common security headers after the rest of the chain has run.
By default every response gets them; with ``html_only=True`` they are
applied to ``text/html`` responses only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from wren.middleware.protocol import Next

if TYPE_CHECKING:
    from wren.context import Context


@dataclass(frozen=True, slots=True)
class SecurityHeadersConfig:
    """Configuration for security headers.

    All values are applied as-is. ``None`` leaves a header out.
    """

    x_frame_options: str | None = "DENY"
    x_content_type_options: str | None = "nosniff"
    referrer_policy: str | None = "strict-origin-when-cross-origin"
    content_security_policy: str | None = (
        "default-src 'self'; base-uri 'self'; frame-ancestors 'none'; object-src 'none'"
    )
    strict_transport_security: str | None = None
    html_only: bool = False

    def headers(self) -> list[tuple[str, str]]:
        pairs = [
            ("X-Frame-Options", self.x_frame_options),
            ("X-Content-Type-Options", self.x_content_type_options),
            ("Referrer-Policy", self.referrer_policy),
            ("Content-Security-Policy", self.content_security_policy),
            ("Strict-Transport-Security", self.strict_transport_security),
        ]
        return [(name, value) for name, value in pairs if value]


class SecurityHeadersMiddleware:
    """Add security headers to responses.

    Usage::

        app.use(SecurityHeadersMiddleware())

    Or with custom config::

        app.use(SecurityHeadersMiddleware(SecurityHeadersConfig(
            x_frame_options="SAMEORIGIN",
            html_only=True,
        )))

    Headers the chain already set are left alone.
    """

    __slots__ = ("_headers", "config")

    def __init__(self, config: SecurityHeadersConfig | None = None) -> None:
        self.config = config or SecurityHeadersConfig()
        self._headers = tuple(self.config.headers())

    async def __call__(self, ctx: Context, next: Next) -> None:
        await next()
        if self.config.html_only:
            content_type = ctx.response_header("content-type") or ""
            if not content_type.startswith("text/html"):
                return
        for name, value in self._headers:
            if ctx.response_header(name) is None:
                ctx.set_header(name, value)
