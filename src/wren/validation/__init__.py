"""Request validation: composable rules, per-facet validator stages.

Usage::

    from wren.validation import validator, required, min_length, email

    app.post(
        "/signup",
        validator("form", {
            "name": [required, min_length(2)],
            "email": [required, email],
        }),
        signup,
    )

    async def signup(ctx):
        data = ctx.valid("form")
"""

from wren.validation.binding import bind_dataclass
from wren.validation.facets import (
    FACETS,
    Facet,
    FacetValidator,
    ValidatedFacets,
    check_fields,
    order_validators,
    validate,
    validation_error_response,
    validator,
)
from wren.validation.rules import (
    Rule,
    email,
    integer,
    matches,
    max_length,
    min_length,
    number,
    one_of,
    required,
    url,
)

__all__ = [
    "FACETS",
    "Facet",
    "FacetValidator",
    "Rule",
    "ValidatedFacets",
    "bind_dataclass",
    "check_fields",
    "email",
    "integer",
    "matches",
    "max_length",
    "min_length",
    "number",
    "one_of",
    "order_validators",
    "required",
    "url",
    "validate",
    "validation_error_response",
    "validator",
]
