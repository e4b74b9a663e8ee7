"""Response values.

``Response`` and ``StreamingResponse`` are frozen: every ``.with_*()``
call returns a new value, so a middleware can take the response
``next()`` gave it, adjust it and return the copy. The mutable,
per-request counterpart is the response builder on ``Context``; it
produces one of these when the context is finalized.
"""

from __future__ import annotations

import json as json_module
from collections.abc import AsyncIterator, Iterable, Iterator, Mapping
from dataclasses import dataclass, replace
from typing import Self

from wren.http.cookies import SetCookie

TEXT = "text/plain; charset=utf-8"
HTML = "text/html; charset=utf-8"
JSON = "application/json; charset=utf-8"
OCTET_STREAM = "application/octet-stream"


class _Transforms:
    """``.with_*()`` API shared by both response types.

    ``headers`` is an ordered multimap of ``(name, value)`` pairs; a name
    may appear more than once (``Vary``, ``Link``).
    """

    __slots__ = ()

    status: int
    content_type: str
    headers: tuple[tuple[str, str], ...]
    cookies: tuple[SetCookie, ...]

    def with_status(self, status: int) -> Self:
        return replace(self, status=status)  # type: ignore[type-var]

    def with_content_type(self, content_type: str) -> Self:
        return replace(self, content_type=content_type)  # type: ignore[type-var]

    def with_header(self, name: str, value: str) -> Self:
        """Add a header, keeping any existing values of the same name."""
        return replace(self, headers=(*self.headers, (name, value)))  # type: ignore[type-var]

    def with_headers(self, headers: Mapping[str, str] | Iterable[tuple[str, str]]) -> Self:
        pairs = headers.items() if isinstance(headers, Mapping) else headers
        return replace(self, headers=(*self.headers, *pairs))  # type: ignore[type-var]

    def without_header(self, name: str) -> Self:
        lowered = name.lower()
        kept = tuple(pair for pair in self.headers if pair[0].lower() != lowered)
        return replace(self, headers=kept)  # type: ignore[type-var]

    def with_cookie(
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
    ) -> Self:
        cookie = SetCookie(
            name=name,
            value=value,
            max_age=max_age,
            path=path,
            domain=domain,
            secure=secure,
            httponly=httponly,
            samesite=samesite,
        )
        return replace(self, cookies=(*self.cookies, cookie))  # type: ignore[type-var]

    def header(self, name: str) -> str | None:
        """First value of header *name* (case-insensitive), or None."""
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    def header_list(self, name: str) -> list[str]:
        lowered = name.lower()
        return [value for key, value in self.headers if key.lower() == lowered]


@dataclass(frozen=True, slots=True)
class Response(_Transforms):
    """A complete response whose body is known up front."""

    body: str | bytes = ""
    status: int = 200
    content_type: str = TEXT
    headers: tuple[tuple[str, str], ...] = ()
    cookies: tuple[SetCookie, ...] = ()

    @property
    def body_bytes(self) -> bytes:
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return self.body

    @property
    def text(self) -> str:
        if isinstance(self.body, bytes):
            return self.body.decode("utf-8")
        return self.body

    def json(self) -> object:
        """Decode a JSON body."""
        return json_module.loads(self.body_bytes)


@dataclass(frozen=True, slots=True)
class StreamingResponse(_Transforms):
    """A response sent chunk by chunk as *chunks* yields.

    Status and headers go out before the first chunk, so a failure while
    iterating can only cut the stream short.
    """

    chunks: Iterator[str | bytes] | AsyncIterator[str | bytes]
    status: int = 200
    content_type: str = OCTET_STREAM
    headers: tuple[tuple[str, str], ...] = ()
    cookies: tuple[SetCookie, ...] = ()


@dataclass(frozen=True, slots=True)
class Redirect:
    """A redirect return value. Negotiated to an empty Response with ``Location``."""

    url: str
    status: int = 302
    headers: tuple[tuple[str, str], ...] = ()


# Any response type the pipeline can produce
type AnyResponse = Response | StreamingResponse
