"""Facet validators: the validation stages of a route chain.

A ``FacetValidator`` checks one part (facet) of the request against a
schema before the handler runs::

    app.post(
        "/users",
        validator("json", {"name": [required, max_length(50)]}),
        validator("query", {"notify": [one_of("yes", "no")]}),
        create_user,
    )

    async def create_user(ctx):
        body = ctx.valid("json")

Schemas come in three forms:

- a mapping of field name -> list of rules (``wren.validation.rules``),
- a dataclass type, bound and coerced field by field,
- a callable ``(raw) -> value`` raising ``ValidationError`` or ``ValueError``.

A failing validator short-circuits the chain with a 400 response unless
its ``hook`` returns a replacement. Validators sharing a facet run next
to each other, facets in order of first declaration.
"""

from __future__ import annotations

import json as json_module
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from wren._internal.invoke import invoke
from wren._internal.multimap import MultiValueMapping
from wren.errors import ConfigurationError, ValidationError, ValidationIssue
from wren.http.forms import is_form_content_type, media_type
from wren.http.response import JSON, Response
from wren.server.negotiation import dump_json
from wren.validation.binding import bind_dataclass, is_schema_dataclass
from wren.validation.rules import Rule, required

if TYPE_CHECKING:
    from wren.context import Context
    from wren.middleware.protocol import Next

type Facet = Literal["path", "query", "header", "cookie", "body", "json", "form"]

FACETS: frozenset[str] = frozenset({"path", "query", "header", "cookie", "body", "json", "form"})

# Field name reported for problems with the facet as a whole
WHOLE_FACET = ""

type Hook = Callable[[ValidationError, Context], Any]

# Facet name -> validated value
type ValidatedFacets = dict[str, Any]


@dataclass(frozen=True, slots=True)
class FacetValidator:
    """One validation stage. Build with ``validator()``."""

    facet: str
    schema: Any
    hook: Hook | None = None

    def __repr__(self) -> str:
        return f"FacetValidator({self.facet!r})"

    async def __call__(self, ctx: Context, next: Next) -> Any:
        try:
            value = await self.run(ctx)
        except ValidationError as error:
            if self.hook is not None:
                replacement = await invoke(self.hook, error, ctx)
                if replacement is not None:
                    return replacement
            return validation_error_response(error)
        ctx._store_valid(self.facet, value)
        await next()
        return None

    async def run(self, ctx: Context) -> Any:
        """Extract and check the facet. Raises ``ValidationError``."""
        raw = await extract_facet(self.facet, ctx)
        schema = self.schema
        if isinstance(schema, Mapping):
            return check_fields(self.facet, raw, schema)
        if is_schema_dataclass(schema):
            return bind_dataclass(schema, _as_mapping(self.facet, raw), facet=self.facet)
        try:
            return await invoke(schema, raw)
        except ValueError as exc:
            raise ValidationError.single(self.facet, WHOLE_FACET, str(exc)) from exc


def validator(facet: Facet | str, schema: Any, *, hook: Hook | None = None) -> FacetValidator:
    """Declare a validator for *facet*.

    Raises ``ConfigurationError`` for an unknown facet or a schema that is
    neither a mapping, a dataclass type, nor callable.
    """
    if facet not in FACETS:
        msg = f"Unknown validation facet {facet!r}; expected one of {sorted(FACETS)}"
        raise ConfigurationError(msg)
    if not (isinstance(schema, Mapping) or is_schema_dataclass(schema) or callable(schema)):
        msg = f"Unsupported schema for {facet!r} validator: {schema!r}"
        raise ConfigurationError(msg)
    return FacetValidator(facet=facet, schema=schema, hook=hook)


async def validate(validators: Iterable[FacetValidator], ctx: Context) -> ValidatedFacets:
    """Run *validators* in chain order and store their results on *ctx*.

    Stops at the first failing validator by raising its ``ValidationError``.
    Returns the validated values keyed by facet.
    """
    results: ValidatedFacets = {}
    for item in order_validators(validators):
        value = await item.run(ctx)
        ctx._store_valid(item.facet, value)
        results[item.facet] = ctx.valid(item.facet)
    return results


def order_validators[V](validators: Iterable[V]) -> list[V]:
    """Group validators by facet.

    Facet groups keep the order in which each facet first appears;
    validators inside a group keep their declared order. Stages that are
    not facet validators keep their place as a group of their own.
    """
    groups: dict[object, list[V]] = {}
    for item in validators:
        key = item.facet if isinstance(item, FacetValidator) else id(item)
        groups.setdefault(key, []).append(item)
    return [item for group in groups.values() for item in group]


def check_fields(
    facet: str,
    data: MultiValueMapping | Mapping[str, Any],
    schema: Mapping[str, Sequence[Rule]],
) -> dict[str, Any]:
    """Run every rule for every field, collecting all issues.

    A failing ``required`` stops the remaining rules of its field.
    Missing fields are checked as the empty string. Returns the field
    values (only when nothing failed).
    """
    data = _as_mapping(facet, data)
    issues: list[ValidationIssue] = []
    cleaned: dict[str, Any] = {}

    for name, rules in schema.items():
        raw = data.get(name)
        value = "" if raw is None else raw if isinstance(raw, str) else str(raw)

        failed = False
        for rule in rules:
            message = rule(value)
            if message is None:
                continue
            failed = True
            issues.append(ValidationIssue(facet, name, message))
            if rule is required:
                break

        if not failed:
            cleaned[name] = value if raw is None else raw

    if issues:
        raise ValidationError(issues)
    return cleaned


async def extract_facet(facet: str, ctx: Context) -> Any:
    """Raw data for *facet*. Body facets read and parse the request body."""
    match facet:
        case "path":
            return dict(ctx.params)
        case "query":
            return ctx.query
        case "header":
            return ctx.headers
        case "cookie":
            return dict(ctx.cookies)
        case "json":
            return await _read_json(ctx, facet)
        case "form":
            return await _read_form(ctx, facet)
        case "body":
            content_type = ctx.req.content_type
            if is_form_content_type(content_type):
                return await _read_form(ctx, facet)
            if _is_json_content_type(content_type):
                return await _read_json(ctx, facet)
            raise ValidationError.single(
                facet, WHOLE_FACET, f"Unsupported content type: {content_type or 'none'}"
            )
    msg = f"Unknown validation facet {facet!r}"
    raise ConfigurationError(msg)


def validation_error_response(error: ValidationError) -> Response:
    """The default 400 answer for a failed validator."""
    return Response(body=dump_json(error.to_payload()), status=400, content_type=JSON)


# -- internals --


def _is_json_content_type(content_type: str | None) -> bool:
    media = media_type(content_type)
    return media == "application/json" or media.endswith("+json")


async def _read_json(ctx: Context, facet: str) -> Any:
    content_type = ctx.req.content_type
    if not _is_json_content_type(content_type):
        raise ValidationError.single(
            facet, WHOLE_FACET, f"Expected application/json, got {content_type or 'none'}"
        )
    try:
        return await ctx.req.json()
    except (json_module.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError.single(facet, WHOLE_FACET, "Malformed JSON body") from exc


async def _read_form(ctx: Context, facet: str) -> Any:
    content_type = ctx.req.content_type
    if not is_form_content_type(content_type):
        raise ValidationError.single(
            facet, WHOLE_FACET, f"Expected a form body, got {content_type or 'none'}"
        )
    try:
        return await ctx.req.form()
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValidationError.single(facet, WHOLE_FACET, "Malformed form body") from exc


def _as_mapping(facet: str, data: Any) -> Mapping[str, Any]:
    if isinstance(data, Mapping):
        return data
    raise ValidationError.single(facet, WHOLE_FACET, "Expected an object")
