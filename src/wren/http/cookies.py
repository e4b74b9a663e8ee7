"""Cookies in both directions.

``parse_cookies`` reads the request's ``Cookie`` header (used by
``Request.cookies`` and the ``cookie`` validation facet). ``SetCookie``
is one ``Set-Cookie`` line of a response.
"""

from dataclasses import dataclass
from urllib.parse import quote, unquote

# Characters left unescaped in cookie values
_SAFE = "!#$&'()*+-./:<=>?@[]^_`{|}~"

_SAMESITE = frozenset({"strict", "lax", "none"})


def parse_cookies(header: str) -> dict[str, str]:
    """``"a=1; b=\\"two\\""`` -> ``{"a": "1", "b": "two"}``.

    Values are unquoted and percent-decoded. Pairs without ``=`` are
    skipped; when a name repeats, the first value wins.
    """
    cookies: dict[str, str] = {}
    for pair in header.split(";"):
        name, sep, value = pair.partition("=")
        name = name.strip()
        if not sep or not name:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        cookies.setdefault(name, unquote(value))
    return cookies


@dataclass(frozen=True, slots=True)
class SetCookie:
    """A ``Set-Cookie`` directive.

    Two directives with the same ``(name, path)`` address the same
    client cookie; the response builder keeps only the last one.
    """

    name: str
    value: str
    max_age: int | None = None
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "lax"

    def __post_init__(self) -> None:
        if self.samesite and self.samesite.lower() not in _SAMESITE:
            msg = f"Invalid SameSite value {self.samesite!r}"
            raise ValueError(msg)

    @classmethod
    def expired(cls, name: str, *, path: str = "/", domain: str | None = None) -> "SetCookie":
        """A directive telling the client to drop *name*."""
        return cls(name=name, value="", max_age=0, path=path, domain=domain)

    def to_header_value(self) -> str:
        parts = [f"{self.name}={quote(self.value, safe=_SAFE)}"]
        if self.max_age is not None:
            parts.append(f"Max-Age={self.max_age}")
        if self.path:
            parts.append(f"Path={self.path}")
        if self.domain:
            parts.append(f"Domain={self.domain}")
        if self.secure:
            parts.append("Secure")
        if self.httponly:
            parts.append("HttpOnly")
        if self.samesite:
            parts.append(f"SameSite={self.samesite.capitalize()}")
        return "; ".join(parts)
