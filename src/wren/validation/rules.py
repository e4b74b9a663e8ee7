"""Field rules for mapping schemas.

A rule takes the field's string value and returns an error message, or
``None`` when the value is acceptable. Rules with parameters are
factories::

    validator("query", {"q": [required, min_length(3)]})

Any ``(str) -> str | None`` callable works as a custom rule.
"""

import re
from collections.abc import Callable

# A single field check
type Rule = Callable[[str], str | None]


def _rule(name: str, accept: Callable[[str], bool], message: str) -> Rule:
    """A rule reporting *message* whenever *accept* says no."""

    def check(value: str) -> str | None:
        return None if accept(value) else message

    check.__name__ = name
    return check


def _parses(convert: Callable[[str], object]) -> Callable[[str], bool]:
    def accept(value: str) -> bool:
        try:
            convert(value)
        except (ValueError, TypeError):
            return False
        return True

    return accept


def required(value: str) -> str | None:
    """Non-blank. When it fails, the field's other rules are skipped."""
    if value and value.strip():
        return None
    return "This field is required"


def min_length(n: int) -> Rule:
    return _rule(f"min_length({n})", lambda v: len(v) >= n, f"Must be at least {n} characters")


def max_length(n: int) -> Rule:
    return _rule(f"max_length({n})", lambda v: len(v) <= n, f"Must be at most {n} characters")


def matches(pattern: str, message: str | None = None) -> Rule:
    """The whole value must match *pattern*."""
    compiled = re.compile(pattern)
    return _rule(
        f"matches({pattern!r})",
        lambda v: compiled.fullmatch(v) is not None,
        message or f"Must match pattern: {pattern}",
    )


def one_of(*choices: str) -> Rule:
    allowed = frozenset(choices)
    listing = ", ".join(sorted(allowed))
    return _rule(f"one_of({listing})", allowed.__contains__, f"Must be one of: {listing}")


# Shape checks only; nothing is resolved or fetched
_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}$")
_URL_RE = re.compile(r"^https?://[^\s/$.?#].\S*$", re.IGNORECASE)

email = _rule("email", lambda v: _EMAIL_RE.match(v) is not None, "Must be a valid email address")
url = _rule("url", lambda v: _URL_RE.match(v) is not None, "Must be a valid URL")
integer = _rule("integer", _parses(int), "Must be a whole number")
number = _rule("number", _parses(float), "Must be a number")
