"""Bearer token authentication middleware.

Checks the ``Authorization: Bearer <token>`` header against a fixed set
of tokens or a ``verify_token`` callback. Authenticated requests carry
the verification result in the context under ``AUTH``; everything else
short-circuits with 401::

    app.use("/api", BearerAuthMiddleware(BearerAuthConfig(tokens=("s3cret",))))

    async def me(ctx):
        principal = ctx.get(AUTH)
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from wren._internal.invoke import invoke
from wren.context import Key
from wren.errors import ConfigurationError
from wren.http.response import JSON, Response
from wren.middleware.protocol import Next
from wren.server.negotiation import dump_json

if TYPE_CHECKING:
    from wren.context import Context

logger = logging.getLogger("wren.middleware")

# Whatever verification produced: the token itself, or verify_token's result
AUTH: Key[Any] = Key("auth")


@dataclass(frozen=True, slots=True)
class BearerAuthConfig:
    """Bearer authentication configuration.

    Attributes:
        tokens: Accepted tokens, compared in constant time.
        verify_token: Sync or async callback; returns a principal for a
            valid token, ``None`` otherwise. Checked after ``tokens``.
        realm: Reported in ``WWW-Authenticate``.
        header: Request header carrying the credentials.
        scheme: Expected scheme prefix.
    """

    tokens: tuple[str, ...] = ()
    verify_token: Callable[[str], Any] | None = None
    realm: str = "api"
    header: str = "authorization"
    scheme: str = "Bearer"


class BearerAuthMiddleware:
    """Reject requests without a valid bearer token."""

    __slots__ = ("_config",)

    def __init__(self, config: BearerAuthConfig | None = None) -> None:
        self._config = config or BearerAuthConfig()
        if not self._config.tokens and self._config.verify_token is None:
            msg = "BearerAuthConfig requires 'tokens' or 'verify_token' to be set."
            raise ConfigurationError(msg)

    def _extract_token(self, ctx: Context) -> str | None:
        header = ctx.headers.get(self._config.header)
        if header is None:
            return None
        prefix = f"{self._config.scheme} "
        if header[: len(prefix)].lower() != prefix.lower():
            return None
        token = header[len(prefix) :].strip()
        return token or None

    async def _authenticate(self, token: str) -> Any:
        for known in self._config.tokens:
            if hmac.compare_digest(token.encode(), known.encode()):
                return token
        if self._config.verify_token is not None:
            return await invoke(self._config.verify_token, token)
        return None

    def _unauthorized(self, error: str) -> Response:
        challenge = f'{self._config.scheme} realm="{self._config.realm}"'
        if error != "missing_token":
            challenge += f', error="{error}"'
        return Response(
            body=dump_json({"error": "unauthorized", "reason": error}),
            status=401,
            content_type=JSON,
            headers=(("WWW-Authenticate", challenge),),
        )

    async def __call__(self, ctx: Context, next: Next) -> Response | None:
        token = self._extract_token(ctx)
        if token is None:
            return self._unauthorized("missing_token")

        principal = await self._authenticate(token)
        if principal is None:
            logger.info("Rejected bearer token for %s %s", ctx.method, ctx.path)
            return self._unauthorized("invalid_token")

        ctx.set(AUTH, principal)
        await next()
        return None
