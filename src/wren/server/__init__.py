"""Host adapter: ASGI translation, content negotiation, default terminals."""
