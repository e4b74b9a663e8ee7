"""Write finalized responses to the ASGI ``send`` callable.

A ``Response`` goes out as one start message and one body message with
an exact ``content-length``. A ``StreamingResponse`` goes out as a start
message followed by one body message per chunk. For HEAD requests and
for statuses that forbid a body, only the headers are sent.
"""

import logging
from collections.abc import AsyncIterator, Iterator

from wren._internal.asgi import Send
from wren.http.response import AnyResponse, Response, StreamingResponse

logger = logging.getLogger("wren.server")


def body_allowed(status: int) -> bool:
    """False for 1xx, 204 and 304."""
    return not (100 <= status < 200 or status in (204, 304))


def encode_headers(response: AnyResponse) -> list[tuple[bytes, bytes]]:
    """Content-Type, the header multimap, then one ``set-cookie`` per cookie."""
    raw = [(b"content-type", response.content_type.encode("latin-1"))]
    raw.extend(
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in response.headers
    )
    raw.extend(
        (b"set-cookie", cookie.to_header_value().encode("latin-1")) for cookie in response.cookies
    )
    return raw


async def send_any(response: AnyResponse, send: Send, *, head: bool = False) -> None:
    if isinstance(response, StreamingResponse):
        await send_streaming_response(response, send, head=head)
    else:
        await send_response(response, send, head=head)


async def send_response(response: Response, send: Send, *, head: bool = False) -> None:
    headers = encode_headers(response)
    body = b""
    if body_allowed(response.status):
        body = response.body_bytes
        # A HEAD answer advertises the length the GET body would have
        headers.append((b"content-length", str(len(body)).encode("latin-1")))

    await send({"type": "http.response.start", "status": response.status, "headers": headers})
    await send({"type": "http.response.body", "body": b"" if head else body})


async def send_streaming_response(
    response: StreamingResponse,
    send: Send,
    *,
    head: bool = False,
) -> None:
    """Send headers, then each non-empty chunk with ``more_body=True``.

    A chunk iterator that raises is logged and the stream is closed
    early: the status line is already on the wire.
    """
    headers = encode_headers(response)
    if body_allowed(response.status):
        headers.append((b"transfer-encoding", b"chunked"))
    await send({"type": "http.response.start", "status": response.status, "headers": headers})

    if not head and body_allowed(response.status):
        try:
            async for chunk in _iterate(response.chunks):
                if chunk:
                    data = chunk.encode("utf-8") if isinstance(chunk, str) else chunk
                    await send({"type": "http.response.body", "body": data, "more_body": True})
        except Exception:
            logger.exception("Streaming response failed mid-stream")

    await send({"type": "http.response.body", "body": b""})


async def _iterate(
    chunks: Iterator[str | bytes] | AsyncIterator[str | bytes],
) -> AsyncIterator[str | bytes]:
    if isinstance(chunks, AsyncIterator):
        async for chunk in chunks:
            yield chunk
    else:
        for chunk in chunks:
            yield chunk
