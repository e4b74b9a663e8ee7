"""Bind facet data to a dataclass.

Used when a validator's schema is a dataclass type::

    @dataclass(frozen=True, slots=True)
    class Search:
        q: str
        page: int = 1

    app.get("/search", validator("query", Search), search)

Fields with defaults are optional; fields without defaults are required.
``str``, ``int``, ``float`` and ``bool`` values are coerced from their
string form (JSON bodies may already carry the right type). Every
missing or unconvertible field is reported, not just the first.
"""

from __future__ import annotations

import dataclasses
import types
from collections.abc import Mapping
from typing import Any, Union, get_args, get_origin, get_type_hints

from wren.errors import ValidationError, ValidationIssue


def _coerce_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else str(value)


def _coerce_int(value: Any) -> int:
    if isinstance(value, float) and not value.is_integer():
        msg = f"{value!r} is not a whole number"
        raise ValueError(msg)
    return int(value)


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


_COERCIONS: dict[type, Any] = {
    str: _coerce_str,
    int: _coerce_int,
    float: float,
    bool: _coerce_bool,
}


def is_schema_dataclass(schema: Any) -> bool:
    """True if *schema* is a dataclass type (not an instance)."""
    return isinstance(schema, type) and dataclasses.is_dataclass(schema)


def bind_dataclass[T](datacls: type[T], data: Mapping[str, Any], *, facet: str) -> T:
    """Populate *datacls* from *data*.

    Raises ``ValidationError`` with one issue per missing or invalid field.
    """
    hints = get_type_hints(datacls)
    issues: list[ValidationIssue] = []
    values: dict[str, Any] = {}

    for f in dataclasses.fields(datacls):  # type: ignore[arg-type]
        if not f.init:
            continue
        raw = data.get(f.name)

        if raw is None:
            if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
                issues.append(ValidationIssue(facet, f.name, f"{f.name} is required."))
            continue

        base_type = _unwrap_optional(hints.get(f.name, str))
        coerce = _COERCIONS.get(base_type)
        if coerce is None:
            values[f.name] = raw
            continue
        try:
            values[f.name] = coerce(raw)
        except (ValueError, TypeError):
            issues.append(
                ValidationIssue(
                    facet, f.name, f"Invalid value for {f.name}: expected {base_type.__name__}."
                )
            )

    if issues:
        raise ValidationError(issues)
    return datacls(**values)


def _unwrap_optional(hint: Any) -> Any:
    """``int | None`` -> ``int``; anything else unchanged."""
    if get_origin(hint) in (Union, types.UnionType):
        args = [arg for arg in get_args(hint) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return hint
