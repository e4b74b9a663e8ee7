"""Application configuration.

One frozen dataclass, passed to ``App(config)`` and read by the context,
the error terminal and the ASGI adapter.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = AppConfig(debug=True, max_content_length=1024 * 1024)
    """

    # Surface exception type, message and traceback in 500 responses.
    # Production deployments leave this off; details still go to the log.
    debug: bool = False

    # Limits
    max_content_length: int = 16 * 1024 * 1024  # 16 MB

    # Serve HEAD requests from GET routes when no HEAD route matches
    head_fallback: bool = True

    # JSON rendering for ctx.json() and dict/list return values
    json_indent: int | None = None
