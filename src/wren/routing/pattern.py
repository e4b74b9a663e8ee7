"""Path pattern compiler.

Turns a route pattern string into an immutable ``RoutePattern``::

    "/users"               -> [Static("users")]
    "/users/:id"           -> [Static("users"), Param("id")]
    "/posts/:slug?"        -> [Static("posts"), OptionalParam("slug")]
    "/files/*"             -> [Static("files"), Wildcard()]
    "/items/:id{[0-9]+}"   -> [Static("items"), RegexParam("id", re.compile("[0-9]+"))]

Trailing slashes are significant. Empty segments are kept, so ``/`` is
``[Static("")]`` and ``/users/`` is ``[Static("users"), Static("")]``.
Request paths are split with the same rule (``split_path``), which makes
``/users`` and ``/users/`` two different paths.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from wren.errors import PatternError

# Name of the parameter a trailing wildcard binds to
WILDCARD_KEY = "*"

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


@dataclass(frozen=True, slots=True)
class Static:
    """Literal text; compared exactly and case-sensitively."""

    text: str


@dataclass(frozen=True, slots=True)
class Param:
    """``:name``: binds exactly one non-empty segment."""

    name: str


@dataclass(frozen=True, slots=True)
class OptionalParam:
    """``:name?``: binds one segment if present, otherwise absent."""

    name: str


@dataclass(frozen=True, slots=True)
class RegexParam:
    """``:name{regex}``: binds one segment that fully matches *regex*."""

    name: str
    regex: re.Pattern[str]


@dataclass(frozen=True, slots=True)
class Wildcard:
    """``*``: consumes the rest of the path, including nothing."""


type Segment = Static | Param | OptionalParam | RegexParam | Wildcard


@dataclass(frozen=True, slots=True)
class RoutePattern:
    """A compiled, immutable route pattern."""

    source: str
    segments: tuple[Segment, ...]

    @property
    def param_names(self) -> tuple[str, ...]:
        """Names this pattern can bind, in declaration order."""
        names: list[str] = []
        for seg in self.segments:
            match seg:
                case Param(name=name) | OptionalParam(name=name) | RegexParam(name=name):
                    names.append(name)
                case Wildcard():
                    names.append(WILDCARD_KEY)
        return tuple(names)

    @property
    def has_wildcard(self) -> bool:
        return bool(self.segments) and isinstance(self.segments[-1], Wildcard)

    def match(self, parts: Sequence[str]) -> dict[str, str] | None:
        """Match split request path *parts*; return bound params or None."""
        return _match(self.segments, 0, parts, 0, {})

    def __str__(self) -> str:
        return self.source


def compile_pattern(pattern: str) -> RoutePattern:
    """Compile *pattern* into a ``RoutePattern``.

    Raises ``PatternError`` when the pattern does not start with ``/``,
    a wildcard is not the final segment, a parameter name is missing,
    malformed or duplicated, braces are unbalanced, or a regex
    constraint does not compile.
    """
    if not pattern.startswith("/"):
        raise PatternError(pattern, "patterns must start with '/'")

    raw_segments = _split_segments(pattern[1:], pattern)
    segments: list[Segment] = []
    seen: set[str] = set()

    for index, raw in enumerate(raw_segments):
        segment = _classify(raw, pattern)

        if isinstance(segment, Wildcard):
            if index != len(raw_segments) - 1:
                raise PatternError(pattern, "'*' must be the final segment")
        else:
            name = getattr(segment, "name", None)
            if name is not None:
                if name in seen:
                    raise PatternError(pattern, f"duplicate parameter name {name!r}")
                seen.add(name)

        segments.append(segment)

    return RoutePattern(source=pattern, segments=tuple(segments))


def split_path(path: str) -> list[str]:
    """Split a request path into segments (``/`` -> ``[""]``)."""
    if path.startswith("/"):
        path = path[1:]
    return path.split("/")


def join_paths(prefix: str, pattern: str) -> str:
    """Join a mount *prefix* and a route *pattern*.

    ``("/api", "/users") -> "/api/users"``, ``("/api", "/") -> "/api"``,
    ``("/", "/users") -> "/users"``.
    """
    base = prefix.rstrip("/")
    if pattern in ("", "/"):
        return base or "/"
    if not pattern.startswith("/"):
        pattern = f"/{pattern}"
    return f"{base}{pattern}"


def is_ancestor(prefix: RoutePattern, route: RoutePattern) -> bool:
    """True if every path *route* can match lies under *prefix*.

    A trailing wildcard and trailing empty segments on the prefix are
    ignored, so ``/api``, ``/api/`` and ``/api/*`` all cover ``/api``
    and ``/api/users/:id``. An empty prefix (``/`` or ``/*``) covers
    everything.
    """
    segments = ancestor_segments(prefix)
    if len(segments) > len(route.segments):
        return False
    return all(
        _covers(p_seg, r_seg) for p_seg, r_seg in zip(segments, route.segments, strict=False)
    )


def ancestor_segments(prefix: RoutePattern) -> tuple[Segment, ...]:
    """Prefix segments with the trailing wildcard and empty segments removed."""
    segments = list(prefix.segments)
    if segments and isinstance(segments[-1], Wildcard):
        segments.pop()
    while segments and segments[-1] == Static(""):
        segments.pop()
    return tuple(segments)


# -- internals --


def _split_segments(body: str, source: str) -> list[str]:
    """Split on ``/`` outside of ``{...}`` regex constraints."""
    parts: list[str] = []
    current: list[str] = []
    depth = 0
    for ch in body:
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth < 0:
                raise PatternError(source, "unbalanced '}'")
        if ch == "/" and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    if depth != 0:
        raise PatternError(source, "unbalanced '{'")
    parts.append("".join(current))
    return parts


def _classify(raw: str, source: str) -> Segment:
    if raw == "*":
        return Wildcard()
    if not raw.startswith(":"):
        return Static(raw)

    decl = raw[1:]
    if "{" in decl:
        name, _, constraint = decl.partition("{")
        if not constraint.endswith("}"):
            raise PatternError(source, f"regex constraint must close the segment in {raw!r}")
        _check_name(name, raw, source)
        try:
            regex = re.compile(constraint[:-1])
        except re.error as exc:
            raise PatternError(source, f"bad regex for {name!r}: {exc}") from exc
        return RegexParam(name=name, regex=regex)

    if decl.endswith("?"):
        name = decl[:-1]
        _check_name(name, raw, source)
        return OptionalParam(name=name)

    _check_name(decl, raw, source)
    return Param(name=decl)


def _check_name(name: str, raw: str, source: str) -> None:
    if not name:
        raise PatternError(source, f"missing parameter name in {raw!r}")
    if not _NAME_RE.match(name):
        raise PatternError(source, f"invalid parameter name {name!r}")


def _match(
    segments: tuple[Segment, ...],
    si: int,
    parts: Sequence[str],
    pi: int,
    params: dict[str, str],
) -> dict[str, str] | None:
    if si == len(segments):
        return params if pi == len(parts) else None

    segment = segments[si]

    match segment:
        case Wildcard():
            return {**params, WILDCARD_KEY: "/".join(parts[pi:])}
        case OptionalParam(name=name):
            if pi < len(parts) and parts[pi]:
                bound = _match(segments, si + 1, parts, pi + 1, {**params, name: parts[pi]})
                if bound is not None:
                    return bound
            return _match(segments, si + 1, parts, pi, params)

    if pi == len(parts):
        return None
    part = parts[pi]

    match segment:
        case Static(text=text):
            if part != text:
                return None
            return _match(segments, si + 1, parts, pi + 1, params)
        case Param(name=name):
            if not part:
                return None
            return _match(segments, si + 1, parts, pi + 1, {**params, name: part})
        case RegexParam(name=name, regex=regex):
            if not part or regex.fullmatch(part) is None:
                return None
            return _match(segments, si + 1, parts, pi + 1, {**params, name: part})
    return None


def _covers(prefix_seg: Segment, route_seg: Segment) -> bool:
    match prefix_seg:
        case Static(text=text):
            return route_seg == Static(text)
        case Param() | OptionalParam():
            return not isinstance(route_seg, Wildcard)
        case RegexParam(regex=regex):
            match route_seg:
                case Static(text=text):
                    return regex.fullmatch(text) is not None
                case RegexParam(regex=other):
                    return other.pattern == regex.pattern
            return False
    return False
