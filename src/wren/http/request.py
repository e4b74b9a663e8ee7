"""Immutable HTTP request.

Metadata is frozen when the request is created. The body is pulled from
the host lazily and at most once; a ``RequestBody`` shared by every copy
of the request (see ``with_path_params``) remembers what was read.
"""

from __future__ import annotations

import json as json_module
from collections.abc import AsyncGenerator, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from wren._internal.asgi import Receive
from wren.errors import BodyConsumedError, ClientDisconnect, PayloadTooLarge
from wren.http.cookies import parse_cookies
from wren.http.forms import URLENCODED, FormData, parse_form_data
from wren.http.headers import Headers
from wren.http.query import QueryParams


class RequestBody:
    """The body stream of one request plus everything parsed from it.

    ``chunks()`` drains the host's ``receive`` once. ``read()`` drains it
    into bytes and keeps them, so the JSON and form parsers can run after
    a validator has already read the body.
    """

    __slots__ = ("_bytes", "_consumed", "_parsed", "_receive", "limit")

    def __init__(self, receive: Receive, *, limit: int | None = None) -> None:
        self._receive = receive
        self.limit = limit
        self._consumed = False
        self._bytes: bytes | None = None
        self._parsed: dict[str, Any] = {}

    @property
    def consumed(self) -> bool:
        return self._consumed

    async def chunks(self, declared_length: int | None = None) -> AsyncGenerator[bytes]:
        """Yield body chunks as the host delivers them.

        Raises ``BodyConsumedError`` on a second pass,
        ``PayloadTooLarge`` as soon as the limit is exceeded and
        ``ClientDisconnect`` if the client leaves mid-body.
        """
        if self._consumed:
            msg = "Request body was already consumed"
            raise BodyConsumedError(msg)
        self._consumed = True

        limit = self.limit
        if limit is not None and declared_length is not None and declared_length > limit:
            raise PayloadTooLarge(limit)

        received = 0
        while True:
            message = await self._receive()
            if message.get("type") == "http.disconnect":
                # The last body message has not arrived yet
                msg = "Client disconnected before the request body was complete"
                raise ClientDisconnect(msg)
            chunk = message.get("body", b"")
            if chunk:
                received += len(chunk)
                if limit is not None and received > limit:
                    raise PayloadTooLarge(limit)
                yield chunk
            if not message.get("more_body", False):
                return

    async def read(self, declared_length: int | None = None) -> bytes:
        if self._bytes is None:
            self._bytes = b"".join([chunk async for chunk in self.chunks(declared_length)])
        return self._bytes

    def cached(self, kind: str) -> Any:
        return self._parsed.get(kind)

    def remember(self, kind: str, value: Any) -> Any:
        self._parsed[kind] = value
        return value


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    Build one with ``Request.from_asgi`` (the server adapter) or
    ``Request.build`` (tests and non-ASGI hosts). Read the body with
    ``await body()``, ``json()``, ``text()`` or ``form()``; iterate it
    raw with ``stream()``, which is only possible before anything else
    has read it.
    """

    method: str
    path: str
    headers: Headers
    query: QueryParams
    body_source: RequestBody = field(repr=False, compare=False)
    path_params: dict[str, str] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)
    http_version: str = "1.1"
    server: tuple[str, int] | None = None
    client: tuple[str, int] | None = None

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")

    @property
    def content_length(self) -> int | None:
        value = self.headers.get("content-length")
        if value is None or not value.strip().isdigit():
            return None
        return int(value)

    @property
    def url(self) -> str:
        """Path plus query string, as requested."""
        raw = self.query.raw
        return f"{self.path}?{raw.decode('utf-8', errors='replace')}" if raw else self.path

    @property
    def body_consumed(self) -> bool:
        return self.body_source.consumed

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name, default)

    # -- Body --

    def stream(self) -> AsyncGenerator[bytes]:
        """Iterate the raw body chunks. Only one pass is possible."""
        return self.body_source.chunks(self.content_length)

    async def body(self) -> bytes:
        return await self.body_source.read(self.content_length)

    async def text(self) -> str:
        return (await self.body()).decode("utf-8")

    async def json(self) -> Any:
        """Decode a JSON body. An empty body decodes to ``None``."""
        source = self.body_source
        if source.cached("json") is None:
            raw = await self.body()
            source.remember("json", (json_module.loads(raw) if raw else None,))
        return source.cached("json")[0]

    async def form(self) -> FormData:
        """Parse a URL-encoded or multipart body.

        Raises ``ValueError`` for other content types or a broken body.
        """
        source = self.body_source
        cached = source.cached("form")
        if cached is None:
            raw = await self.body()
            cached = source.remember(
                "form", await parse_form_data(raw, self.content_type or URLENCODED)
            )
        return cached

    # -- Construction --

    def with_path_params(self, params: dict[str, str]) -> Request:
        """A copy bound to *params*, sharing this request's body."""
        return replace(self, path_params=params)

    @classmethod
    def from_asgi(
        cls,
        scope: Mapping[str, Any],
        receive: Receive,
        *,
        max_body_size: int | None = None,
    ) -> Request:
        headers = Headers(tuple(tuple(pair) for pair in scope.get("headers", ())))
        server = scope.get("server")
        client = scope.get("client")
        return cls(
            method=scope["method"].upper(),
            path=scope["path"] or "/",
            headers=headers,
            query=QueryParams(scope.get("query_string", b"")),
            body_source=RequestBody(receive, limit=max_body_size),
            cookies=parse_cookies(headers.get("cookie", "")),
            http_version=scope.get("http_version", "1.1"),
            server=tuple(server) if server else None,
            client=tuple(client) if client else None,
        )

    @classmethod
    def build(
        cls,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: bytes = b"",
        max_body_size: int | None = None,
    ) -> Request:
        """A request with an in-memory body; *url* may carry a query string."""
        path, _, query_string = url.partition("?")
        delivered = False

        async def receive() -> dict[str, Any]:
            nonlocal delivered
            if delivered:
                return {"type": "http.disconnect"}
            delivered = True
            return {"type": "http.request", "body": body, "more_body": False}

        hdrs = Headers.from_pairs(headers or {})
        return cls(
            method=method.upper(),
            path=path or "/",
            headers=hdrs,
            query=QueryParams(query_string),
            body_source=RequestBody(receive, limit=max_body_size),
            cookies=parse_cookies(hdrs.get("cookie", "")),
        )
