"""Fixed-window rate limiting middleware.

A small in-memory limiter keyed by client address. Scope it with a
prefix to protect specific endpoints::

    app.use("/login", RateLimitMiddleware(RateLimitConfig(requests=5)))

State lives in one process; behind several workers each keeps its own
counts.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from wren.http.response import JSON, Response
from wren.middleware.protocol import Next
from wren.server.negotiation import dump_json

if TYPE_CHECKING:
    from wren.context import Context


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    """Configuration for the fixed-window limiter.

    ``block_seconds`` > 0 keeps a client blocked for that long after it
    exceeds the limit, instead of only until the window rolls over.
    ``methods`` limits only those methods; empty means all.

    Clients are keyed by socket address. Set ``key_header`` (for example
    ``"x-forwarded-for"``) only behind a proxy that overwrites it; the
    first address in the header then identifies the client.
    """

    requests: int = 60
    window_seconds: int = 60
    block_seconds: int = 0
    methods: tuple[str, ...] = ()
    key_header: str | None = None


class RateLimitMiddleware:
    """In-memory fixed-window limiter. Answers 429 when a client is over."""

    __slots__ = ("_clock", "_config", "_last_sweep", "_lock", "_state")

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or RateLimitConfig()
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (count, window_start, blocked_until)
        self._state: dict[str, tuple[int, float, float]] = {}
        self._last_sweep = clock()

    def _identity_key(self, ctx: Context) -> str:
        header_name = self._config.key_header
        if header_name:
            raw = ctx.headers.get(header_name)
            if raw:
                # First hop of a comma-separated proxy chain is the client
                forwarded = raw.split(",")[0].strip()
                if forwarded:
                    return forwarded
        if ctx.req.client:
            return ctx.req.client[0]
        return "unknown"

    def _check_and_update(self, key: str, now: float) -> tuple[bool, int, int]:
        """Return (allowed, remaining, retry_after)."""
        cfg = self._config
        with self._lock:
            if now - self._last_sweep >= cfg.window_seconds:
                self._sweep(now)
            count, window_start, blocked_until = self._state.get(key, (0, now, 0.0))
            if blocked_until > now:
                return False, 0, max(1, int(blocked_until - now))

            if now - window_start >= cfg.window_seconds:
                count = 0
                window_start = now

            count += 1
            if count > cfg.requests:
                if cfg.block_seconds > 0:
                    blocked_until = now + cfg.block_seconds
                    retry_after = cfg.block_seconds
                else:
                    retry_after = max(1, int(window_start + cfg.window_seconds - now))
                self._state[key] = (count, window_start, blocked_until)
                return False, 0, retry_after

            self._state[key] = (count, window_start, 0.0)
            return True, cfg.requests - count, 0

    def _sweep(self, now: float) -> None:
        """Forget clients whose window and block have both run out. Lock held."""
        window = self._config.window_seconds
        expired = [
            key
            for key, (_, window_start, blocked_until) in self._state.items()
            if now - window_start >= window and blocked_until <= now
        ]
        for key in expired:
            del self._state[key]
        self._last_sweep = now

    async def __call__(self, ctx: Context, next: Next) -> Response | None:
        cfg = self._config
        if cfg.methods and ctx.method not in cfg.methods:
            await next()
            return None

        allowed, remaining, retry_after = self._check_and_update(
            self._identity_key(ctx), self._clock()
        )
        if not allowed:
            return Response(
                body=dump_json({"error": "too_many_requests"}),
                status=429,
                content_type=JSON,
                headers=(("Retry-After", str(retry_after)),),
            )
        ctx.set_header("X-RateLimit-Limit", str(cfg.requests))
        ctx.set_header("X-RateLimit-Remaining", str(remaining))
        await next()
        return None
