"""ASGI handler: translates ASGI scope/messages to wren types.

The only component that touches raw HTTP-scope ASGI directly. Converts
the scope to a typed ``Request``, dispatches it through the app and
sends the finalized response back through ASGI ``send()``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from wren._internal.asgi import Receive, Scope, Send
from wren.errors import ClientDisconnect
from wren.http.request import Request
from wren.http.response import AnyResponse
from wren.server.sender import send_any

if TYPE_CHECKING:
    from wren.app import App

logger = logging.getLogger("wren.server")


async def handle_request(scope: Scope, receive: Receive, send: Send, *, app: App) -> None:
    """Process a single HTTP request through the full pipeline."""
    if scope["type"] != "http":
        logger.debug("Ignoring unsupported ASGI scope type %r", scope["type"])
        return

    request = Request.from_asgi(scope, receive, max_body_size=app.config.max_content_length)
    head = request.method == "HEAD"

    async def deliver(response: AnyResponse) -> None:
        await send_any(response, send, head=head)

    try:
        await app.dispatch(request, deliver=deliver)
    except ClientDisconnect:
        # Cleanup already ran inside dispatch; the peer cannot be answered
        logger.debug("Client disconnected: %s %s", request.method, request.path)
