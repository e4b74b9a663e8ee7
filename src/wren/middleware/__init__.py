"""Middleware: protocol-based, no inheritance required.

A middleware is any callable matching:
    async def mw(ctx: Context, next: Next) -> Response | None

Built-in middleware:
    BearerAuthMiddleware -- Bearer token authentication (401 on failure)
    CORSMiddleware -- Cross-Origin Resource Sharing
    RateLimitMiddleware -- Fixed-window in-memory limiter (429 when over)
    RequestLogger -- One log line per request, X-Response-Time header
    SecurityHeadersMiddleware -- X-Frame-Options, X-Content-Type-Options, Referrer-Policy
"""

from wren.middleware.auth import AUTH, BearerAuthConfig, BearerAuthMiddleware
from wren.middleware.cors import CORSConfig, CORSMiddleware
from wren.middleware.logger import RequestLogger
from wren.middleware.protocol import Middleware, Next
from wren.middleware.rate_limit import RateLimitConfig, RateLimitMiddleware
from wren.middleware.security_headers import (
    SecurityHeadersConfig,
    SecurityHeadersMiddleware,
)

__all__ = [
    "AUTH",
    "BearerAuthConfig",
    "BearerAuthMiddleware",
    "CORSConfig",
    "CORSMiddleware",
    "Middleware",
    "Next",
    "RateLimitConfig",
    "RateLimitMiddleware",
    "RequestLogger",
    "SecurityHeadersConfig",
    "SecurityHeadersMiddleware",
]
