"""Content negotiation: maps stage return values to Response objects.

``negotiate`` inspects the value a middleware, handler or terminal
returned and produces the matching response. isinstance-based dispatch,
no magic, fully predictable.
"""

from __future__ import annotations

import json as json_module
from collections.abc import AsyncIterator, Iterator
from typing import Any

from wren.errors import HandlerError
from wren.http.response import (
    JSON,
    OCTET_STREAM,
    TEXT,
    AnyResponse,
    Redirect,
    Response,
    StreamingResponse,
)


def dump_json(value: Any, *, indent: int | None = None) -> str:
    """Serialize *value* for a JSON body (non-JSON types fall back to ``str``)."""
    return json_module.dumps(value, default=str, indent=indent)


def negotiate(value: Any, *, json_indent: int | None = None) -> AnyResponse:
    """Convert a stage return value to a response.

    Dispatch order:

    1. ``Response`` / ``StreamingResponse`` -> pass through
    2. ``Redirect``           -> status + ``Location`` header
    3. ``str``                -> 200, text/plain
    4. ``bytes``              -> 200, application/octet-stream
    5. ``dict`` / ``list``    -> 200, application/json
    6. async or sync iterator -> StreamingResponse
    7. ``(value, int)``       -> negotiate value, override status
    8. ``(value, int, dict)`` -> negotiate value, override status + headers

    Raises ``HandlerError`` for anything else.
    """
    match value:
        case Response() | StreamingResponse():
            return value
        case Redirect():
            return Response(
                body="",
                status=value.status,
                headers=(("Location", value.url), *value.headers),
            )
        case str():
            return Response(body=value, content_type=TEXT)
        case bytes():
            return Response(body=value, content_type=OCTET_STREAM)
        case dict() | list():
            return Response(body=dump_json(value, indent=json_indent), content_type=JSON)
        case (inner, int() as status):
            return negotiate(inner, json_indent=json_indent).with_status(status)
        case (inner, int() as status, dict() as headers):
            response = negotiate(inner, json_indent=json_indent)
            return response.with_status(status).with_headers(headers)
        case AsyncIterator() | Iterator():
            return StreamingResponse(chunks=value)
        case _:
            msg = (
                f"Cannot convert {type(value).__name__} to a response. "
                "Return str, bytes, dict, list, an iterator, Response, or Redirect."
            )
            raise HandlerError(msg)
