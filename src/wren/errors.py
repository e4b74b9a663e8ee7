"""Wren exception hierarchy.

Shared across the route table, chain executor, context, and validators
so every module raises and catches the same types.

Registration-time errors (``ConfigurationError`` and ``PatternError``)
propagate out of setup code and abort startup. Everything raised while
a request is being handled is caught at the chain boundary and turned
into a response, except ``ClientDisconnect``: there is nobody left to
answer.
"""

from __future__ import annotations

from dataclasses import dataclass, field


class WrenError(Exception):
    """Base for all wren-specific errors."""


class ConfigurationError(WrenError):
    """Raised when app configuration or registration is invalid.

    Typically surfaces while routes are being registered, before the
    app serves its first request.
    """


class PatternError(ConfigurationError):
    """A route or middleware pattern could not be compiled."""

    def __init__(self, pattern: str, reason: str) -> None:
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid route pattern {pattern!r}: {reason}")


@dataclass(frozen=True, slots=True)
class HTTPError(WrenError):
    """An error that maps directly to an HTTP status code.

    Raised by middleware or handlers. The default error terminal turns
    it into a JSON response with the same status and headers.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)

    @property
    def code(self) -> str:
        """Machine-readable error code used in JSON payloads."""
        return _STATUS_CODES.get(self.status, "http_error")

    def to_payload(self) -> dict[str, object]:
        """Structured body for the client."""
        payload: dict[str, object] = {"error": self.code}
        if self.detail:
            payload["message"] = self.detail
        return payload


class NotFound(HTTPError):  # noqa: N818
    """404: no route matched the request."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)


class PayloadTooLarge(HTTPError):  # noqa: N818
    """413: the request body exceeds ``AppConfig.max_content_length``."""

    def __init__(self, limit: int) -> None:
        super().__init__(status=413, detail=f"Request body exceeds {limit} bytes")


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """One failed check: which facet, which field inside it, and why."""

    facet: str
    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"facet": self.facet, "field": self.field, "message": self.message}


@dataclass(frozen=True, slots=True, init=False)
class ValidationError(HTTPError):
    """400: a declared validator rejected part of the request.

    ``issues`` lists every problem found by the failing validator.
    ``facet``, ``field`` and ``message`` describe the first one.
    """

    issues: tuple[ValidationIssue, ...] = field(default=())

    def __init__(self, issues: tuple[ValidationIssue, ...] | list[ValidationIssue]) -> None:
        issues = tuple(issues)
        if not issues:
            msg = "ValidationError requires at least one issue"
            raise ValueError(msg)
        first = issues[0]
        object.__setattr__(self, "status", 400)
        object.__setattr__(self, "detail", f"{first.facet}.{first.field}: {first.message}")
        object.__setattr__(self, "headers", ())
        object.__setattr__(self, "issues", issues)

    @classmethod
    def single(cls, facet: str, field: str, message: str) -> ValidationError:
        """Build an error holding exactly one issue."""
        return cls((ValidationIssue(facet, field, message),))

    @property
    def facet(self) -> str:
        return self.issues[0].facet

    @property
    def field(self) -> str:
        return self.issues[0].field

    @property
    def message(self) -> str:
        return self.issues[0].message

    def to_payload(self) -> dict[str, object]:
        return {
            "error": "validation_failed",
            "issues": [issue.to_dict() for issue in self.issues],
        }


class ChainProtocolError(WrenError):
    """A middleware or handler broke the chain contract.

    Examples: calling ``next()`` twice from the same stage, or mutating a
    response that was already handed to the host. These are programming
    errors; the error terminal logs them and answers 500.
    """


class ContextFinalizedError(ChainProtocolError):
    """The response was mutated after the context was finalized."""


class BodyConsumedError(ChainProtocolError):
    """The request body stream was read a second time."""


class ClientDisconnect(WrenError):
    """The client went away before the request body was complete.

    Not converted into a response: like task cancellation it passes
    through the chain boundary, and the context's cleanup still runs.
    """


class HandlerError(WrenError):
    """A chain finished without producing a response, or a handler
    returned a value that cannot be turned into one."""


_STATUS_CODES: dict[int, str] = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    413: "payload_too_large",
    415: "unsupported_media_type",
    422: "unprocessable_entity",
    429: "too_many_requests",
    500: "internal_server_error",
    502: "bad_gateway",
    503: "service_unavailable",
}
