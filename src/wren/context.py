"""Per-request Context.

A ``Context`` is created for each request once it has been matched (or
found not to match) and is exclusively owned by that request's chain.
It carries:

- the immutable ``Request`` plus the bound path params,
- a variable store for middleware-to-handler communication,
- validated facet values produced by the validation pipeline,
- the in-progress response (status, header multimap, cookies, body).

The response builder accepts mutations until ``finalize()`` hands the
response to the host; after that every mutation raises
``ContextFinalizedError``.

``get_context()`` returns the active context from a ContextVar, which is
task-local under asyncio, so helpers deep in a call stack can reach it
without threading it through every signature.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from contextvars import ContextVar
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, overload

from wren._internal.invoke import invoke
from wren.config import AppConfig
from wren.errors import ContextFinalizedError
from wren.http.cookies import SetCookie
from wren.http.headers import Headers
from wren.http.query import QueryParams
from wren.http.request import Request
from wren.http.response import HTML, JSON, TEXT, AnyResponse, Response, StreamingResponse
from wren.server.negotiation import dump_json, negotiate

if TYPE_CHECKING:
    from wren._internal.types import NotFoundHandler

logger = logging.getLogger("wren.server")

_MISSING: Any = object()


class Key[T]:
    """A typed key for the context variable store.

    Usage::

        USER: Key[User] = Key("user")

        ctx.set(USER, user)      # in middleware
        user = ctx.get(USER)     # in the handler, typed as User | None
    """

    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"Key({self.name!r})"


class Context:
    """The per-request carrier of request data, variables, and response."""

    __slots__ = (
        "_body",
        "_closers",
        "_content_type",
        "_cookies",
        "_final",
        "_headers",
        "_not_found",
        "_responded",
        "_status",
        "_valid",
        "_vars",
        "config",
        "error",
        "req",
    )

    def __init__(
        self,
        request: Request,
        *,
        config: AppConfig | None = None,
        not_found: NotFoundHandler | None = None,
    ) -> None:
        self.req = request
        self.config = config or AppConfig()
        self.error: BaseException | None = None
        self._not_found = not_found
        self._vars: dict[object, Any] = {}
        self._valid: dict[str, Any] = {}
        self._closers: list[Callable[[], Any]] = []
        self._final: AnyResponse | None = None
        self._reset_response()

    def __repr__(self) -> str:
        return f"<Context {self.req.method} {self.req.path} status={self._status}>"

    # -- Request accessors --

    @property
    def method(self) -> str:
        return self.req.method

    @property
    def path(self) -> str:
        return self.req.path

    @property
    def headers(self) -> Headers:
        return self.req.headers

    @property
    def query(self) -> QueryParams:
        return self.req.query

    @property
    def params(self) -> Mapping[str, str]:
        """Path params bound by the matched route (read-only)."""
        return MappingProxyType(self.req.path_params)

    @property
    def cookies(self) -> Mapping[str, str]:
        return self.req.cookies

    def param(self, name: str, default: str | None = None) -> str | None:
        """A single path param; optional params that were skipped are absent."""
        return self.req.path_params.get(name, default)

    async def read_body(self) -> bytes:
        """Consume the request body. The underlying stream is read once."""
        return await self.req.body()

    # -- Variable store --

    def set(self, key: str | Key[Any], value: Any) -> None:
        """Store *value* under *key*. Last write wins."""
        self._vars[key] = value

    @overload
    def get[T](self, key: Key[T]) -> T | None: ...
    @overload
    def get[T](self, key: Key[T], default: T) -> T: ...
    @overload
    def get(self, key: str, default: Any = None) -> Any: ...

    def get(self, key: str | Key[Any], default: Any = None) -> Any:
        """Return the value stored under *key*, or *default*."""
        return self._vars.get(key, default)

    def has(self, key: str | Key[Any]) -> bool:
        return key in self._vars

    @property
    def vars(self) -> Mapping[object, Any]:
        """Read-only view of the variable store."""
        return MappingProxyType(self._vars)

    # -- Validated data --

    def valid(self, facet: str) -> Any:
        """Validated value for *facet* (``"query"``, ``"body"``, ...).

        Raises ``LookupError`` if no validator ran for that facet.
        """
        try:
            return self._valid[facet]
        except KeyError:
            msg = f"No validated data for facet {facet!r}; declare a validator for it"
            raise LookupError(msg) from None

    def _store_valid(self, facet: str, value: Any) -> None:
        current = self._valid.get(facet, _MISSING)
        if isinstance(current, dict) and isinstance(value, dict):
            self._valid[facet] = {**current, **value}
        else:
            self._valid[facet] = value

    # -- Response builder --

    @property
    def finalized(self) -> bool:
        return self._final is not None

    @property
    def responded(self) -> bool:
        """True once any stage has set or returned a response."""
        return self._responded

    @property
    def status(self) -> int:
        return self._status

    def set_status(self, status: int) -> None:
        self._check_mutable()
        self._status = status
        self._responded = True

    def set_header(self, name: str, value: str, *, append: bool = False) -> None:
        """Set a response header, replacing existing values unless *append*."""
        self._check_mutable()
        if name.lower() == "content-type":
            self._content_type = value
            return
        if not append:
            self._drop_header(name)
        self._headers.append((name, value))

    def delete_header(self, name: str) -> None:
        self._check_mutable()
        if name.lower() == "content-type":
            self._content_type = TEXT
            return
        self._drop_header(name)

    def response_header(self, name: str) -> str | None:
        """First value of a response header set so far."""
        if name.lower() == "content-type":
            return self._content_type
        lowered = name.lower()
        for key, value in self._headers:
            if key.lower() == lowered:
                return value
        return None

    def set_body(self, body: Any, *, content_type: str | None = None) -> None:
        """Set the response body (str, bytes, or a chunk iterator)."""
        self._check_mutable()
        self._body = body
        if content_type is not None:
            self._content_type = content_type
        self._responded = True

    def set_cookie(
        self,
        name: str,
        value: str,
        *,
        max_age: int | None = None,
        path: str = "/",
        domain: str | None = None,
        secure: bool = False,
        httponly: bool = True,
        samesite: str = "lax",
    ) -> None:
        self._check_mutable()
        self._put_cookie(
            SetCookie(
                name=name,
                value=value,
                max_age=max_age,
                path=path,
                domain=domain,
                secure=secure,
                httponly=httponly,
                samesite=samesite,
            )
        )

    def delete_cookie(self, name: str, *, path: str = "/") -> None:
        """Expire a cookie on the client (``Max-Age=0``)."""
        self._check_mutable()
        self._put_cookie(SetCookie.expired(name, path=path))

    # -- Response helpers (return values for a stage to return) --

    def text(
        self,
        text: str,
        status: int | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        return self._make(text, TEXT, status, headers)

    def html(
        self,
        html: str,
        status: int | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        return self._make(html, HTML, status, headers)

    def json(
        self,
        data: Any,
        status: int | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        body = dump_json(data, indent=self.config.json_indent)
        return self._make(body, JSON, status, headers)

    def respond(
        self,
        body: str | bytes,
        status: int | None = None,
        *,
        content_type: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        """Raw body response; content type defaults to the builder's."""
        return self._make(body, content_type or self._content_type, status, headers)

    def stream(
        self,
        chunks: Iterable[str | bytes] | Any,
        *,
        status: int | None = None,
        content_type: str = "application/octet-stream",
    ) -> StreamingResponse:
        return StreamingResponse(
            chunks=chunks if not isinstance(chunks, list) else iter(chunks),
            status=status if status is not None else self._status,
            content_type=content_type,
        )

    def redirect(self, url: str, status: int = 302) -> Response:
        return Response(body="", status=status, headers=(("Location", url),))

    async def not_found(self) -> AnyResponse:
        """Run the app's not-found terminal and return its response."""
        if self._not_found is None:
            from wren.server.errors import default_not_found

            return negotiate(default_not_found(self))
        result = await invoke(self._not_found, self)
        return negotiate(result, json_indent=self.config.json_indent)

    # -- Finalization --

    @property
    def response(self) -> AnyResponse:
        """Snapshot of the response built so far. Not finalized."""
        if self._final is not None:
            return self._final
        return self._build()

    def finalize(self) -> AnyResponse:
        """Freeze the response for the host. Idempotent."""
        if self._final is None:
            self._final = self._build()
        return self._final

    def absorb(self, value: Any) -> AnyResponse:
        """Merge a stage return value into the response builder.

        Status, content type and body are replaced. Headers named in the
        returned response replace builder headers with the same name;
        other builder headers are kept. Cookies are replaced by
        name and path.
        """
        self._check_mutable()
        response = negotiate(value, json_indent=self.config.json_indent)
        self._status = response.status
        self._content_type = response.content_type
        if isinstance(response, StreamingResponse):
            self._body = response.chunks
        else:
            self._body = response.body
        for name in {key.lower() for key, _ in response.headers}:
            self._drop_header(name)
        self._headers.extend(response.headers)
        for cookie in response.cookies:
            self._put_cookie(cookie)
        self._responded = True
        return response

    # -- Cleanup --

    def on_close(self, callback: Callable[[], Any]) -> None:
        """Register a cleanup callback (sync or async).

        Callbacks run in reverse registration order when the request
        ends, whether it completed, failed, or was cancelled.
        """
        self._closers.append(callback)

    async def close(self) -> None:
        """Run cleanup callbacks. Failures are logged, not raised."""
        while self._closers:
            callback = self._closers.pop()
            try:
                await invoke(callback)
            except Exception:
                logger.exception("Cleanup callback failed for %s %s", self.method, self.path)

    # -- Internal --

    def _reset_response(self) -> None:
        self._status = 200
        self._headers: list[tuple[str, str]] = []
        self._cookies: list[SetCookie] = []
        self._content_type = TEXT
        self._body: Any = ""
        self._responded = False

    def _check_mutable(self) -> None:
        if self._final is not None:
            msg = (
                f"Response for {self.method} {self.path} was already finalized; "
                "it can no longer be modified."
            )
            raise ContextFinalizedError(msg)

    def _drop_header(self, name: str) -> None:
        lowered = name.lower()
        self._headers = [(k, v) for k, v in self._headers if k.lower() != lowered]

    def _put_cookie(self, cookie: SetCookie) -> None:
        self._cookies = [
            c for c in self._cookies if (c.name, c.path) != (cookie.name, cookie.path)
        ]
        self._cookies.append(cookie)

    def _make(
        self,
        body: str | bytes,
        content_type: str,
        status: int | None,
        headers: Mapping[str, str] | None,
    ) -> Response:
        return Response(
            body=body,
            status=status if status is not None else self._status,
            content_type=content_type,
            headers=tuple((headers or {}).items()),
        )

    def _build(self) -> AnyResponse:
        body = self._body
        if isinstance(body, str | bytes):
            return Response(
                body=body,
                status=self._status,
                content_type=self._content_type,
                headers=tuple(self._headers),
                cookies=tuple(self._cookies),
            )
        return StreamingResponse(
            chunks=body,
            status=self._status,
            content_type=self._content_type,
            headers=tuple(self._headers),
            cookies=tuple(self._cookies),
        )


# -- Active context --

context_var: ContextVar[Context] = ContextVar("wren_context")
"""The current context. Set by the app before the chain runs."""


def get_context() -> Context:
    """Return the active request context.

    Raises ``LookupError`` if called outside a request.
    """
    return context_var.get()
