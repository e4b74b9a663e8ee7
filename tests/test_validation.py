"""Tests for wren.validation: rules, facet validators, pipeline behaviour."""

from dataclasses import dataclass
from typing import Any

import pytest

from wren.app import App
from wren.context import Context
from wren.errors import ConfigurationError, ValidationError
from wren.http.request import Request
from wren.testing import TestClient
from wren.validation import (
    FacetValidator,
    check_fields,
    email,
    integer,
    matches,
    max_length,
    min_length,
    number,
    one_of,
    order_validators,
    required,
    url,
    validate,
    validator,
)


class TestRules:
    def test_required(self) -> None:
        assert required("x") is None
        assert required("") == "This field is required"
        assert required("   ") == "This field is required"

    def test_lengths(self) -> None:
        assert min_length(3)("ab") == "Must be at least 3 characters"
        assert min_length(3)("abc") is None
        assert max_length(2)("abc") == "Must be at most 2 characters"

    def test_formats(self) -> None:
        assert email("a@b.io") is None
        assert email("nope") is not None
        assert url("https://example.com/x") is None
        assert url("ftp://example.com") is not None
        assert matches(r"[a-z]+")("abc") is None
        assert matches(r"[a-z]+", "letters only")("abc1") == "letters only"

    def test_choice_and_numbers(self) -> None:
        assert one_of("a", "b")("a") is None
        assert one_of("a", "b")("c") == "Must be one of: a, b"
        assert integer("42") is None
        assert integer("4.2") == "Must be a whole number"
        assert number("4.2") is None
        assert number("x") == "Must be a number"


class TestCheckFields:
    def test_accumulates_across_fields_and_rules(self) -> None:
        schema = {
            "name": [min_length(3), matches(r"[a-z]+")],
            "age": [integer],
        }
        with pytest.raises(ValidationError) as exc_info:
            check_fields("form", {"name": "A1", "age": "old"}, schema)
        issues = exc_info.value.issues
        assert [(i.field, i.message) for i in issues] == [
            ("name", "Must be at least 3 characters"),
            ("name", "Must match pattern: [a-z]+"),
            ("age", "Must be a whole number"),
        ]
        assert all(i.facet == "form" for i in issues)

    def test_required_stops_its_field(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            check_fields("query", {}, {"q": [required, min_length(3)]})
        assert len(exc_info.value.issues) == 1
        assert exc_info.value.message == "This field is required"

    def test_cleaned_values(self) -> None:
        result = check_fields("json", {"n": 5, "extra": "x"}, {"n": [integer]})
        # Values keep their type; keys outside the schema are dropped
        assert result == {"n": 5}

    def test_missing_optional_field_is_empty_string(self) -> None:
        assert check_fields("query", {}, {"q": [max_length(5)]}) == {"q": ""}


class TestValidatorFactory:
    def test_unknown_facet(self) -> None:
        with pytest.raises(ConfigurationError, match="facet"):
            validator("bogus", {})

    def test_unsupported_schema(self) -> None:
        with pytest.raises(ConfigurationError):
            validator("query", 42)

    def test_returns_facet_validator(self) -> None:
        v = validator("query", {"q": [required]})
        assert isinstance(v, FacetValidator)
        assert v.facet == "query"

    def test_order_groups_by_first_declaration(self) -> None:
        q1 = validator("query", {"a": []})
        h1 = validator("header", {"b": []})
        q2 = validator("query", {"c": []})
        j1 = validator("json", {"d": []})
        assert order_validators([q1, h1, q2, j1]) == [q1, q2, h1, j1]


class TestValidatePipeline:
    async def test_stops_at_first_failing_validator(self) -> None:
        ctx = Context(Request.build("GET", "/?q=ab", headers={"x-id": "zz"}))
        first = validator("query", {"q": [min_length(3)]})
        second = validator("header", {"x-id": [integer]})
        with pytest.raises(ValidationError) as exc_info:
            await validate([first, second], ctx)
        assert exc_info.value.facet == "query"
        assert len(exc_info.value.issues) == 1

    async def test_success_stores_values(self) -> None:
        ctx = Context(Request.build("GET", "/?q=abc&page=2"))
        results = await validate(
            [
                validator("query", {"q": [min_length(3)]}),
                validator("query", {"page": [integer]}),
            ],
            ctx,
        )
        assert results == {"query": {"q": "abc", "page": "2"}}
        assert ctx.valid("query") == {"q": "abc", "page": "2"}


def _search_app(*stages: Any) -> App:
    app = App()

    async def search(ctx: Context) -> Any:
        return {"valid": ctx.valid("query")}

    app.get("/search", *stages, search)
    return app


class TestQueryFacet:
    async def test_rejects_short_query(self) -> None:
        app = _search_app(validator("query", {"q": [min_length(3)]}))
        async with TestClient(app) as client:
            response = await client.get("/search?q=ab")
        assert response.status == 400
        assert response.json() == {
            "error": "validation_failed",
            "issues": [
                {"facet": "query", "field": "q", "message": "Must be at least 3 characters"}
            ],
        }

    async def test_accepts_valid_query(self) -> None:
        app = _search_app(validator("query", {"q": [min_length(3)]}))
        async with TestClient(app) as client:
            response = await client.get("/search", query={"q": "abc"})
        assert response.status == 200
        assert response.json() == {"valid": {"q": "abc"}}

    async def test_handler_not_called_on_failure(self) -> None:
        called = False
        app = App()

        def handler(ctx: Context) -> str:
            nonlocal called
            called = True
            return "ok"

        app.get("/x", validator("query", {"n": [required]}), handler)
        async with TestClient(app) as client:
            response = await client.get("/x")
        assert response.status == 400
        assert called is False


class TestHook:
    async def test_hook_replaces_response(self) -> None:
        def hook(error: ValidationError, ctx: Context) -> Any:
            return ctx.json({"bad": error.field}, 422)

        app = _search_app(validator("query", {"q": [required]}, hook=hook))
        async with TestClient(app) as client:
            response = await client.get("/search")
        assert response.status == 422
        assert response.json() == {"bad": "q"}

    async def test_hook_returning_none_keeps_default(self) -> None:
        seen: list[str] = []

        def hook(error: ValidationError, ctx: Context) -> None:
            seen.append(error.message)

        app = _search_app(validator("query", {"q": [required]}, hook=hook))
        async with TestClient(app) as client:
            response = await client.get("/search")
        assert response.status == 400
        assert seen == ["This field is required"]


@dataclass(frozen=True, slots=True)
class NewUser:
    name: str
    age: int
    admin: bool = False


class TestBodyFacets:
    async def test_json_dataclass_schema(self) -> None:
        app = App()

        async def create(ctx: Context) -> Any:
            user = ctx.valid("json")
            return {"name": user.name, "age": user.age, "admin": user.admin}

        app.post("/users", validator("json", NewUser), create)
        async with TestClient(app) as client:
            response = await client.post("/users", json={"name": " Ada ", "age": "36"})
        assert response.status == 200
        assert response.json() == {"name": "Ada", "age": 36, "admin": False}

    async def test_dataclass_reports_every_field(self) -> None:
        app = App()
        app.post("/users", validator("json", NewUser), lambda ctx: "unreachable")
        async with TestClient(app) as client:
            response = await client.post("/users", json={"age": "old"})
        assert response.status == 400
        fields = [issue["field"] for issue in response.json()["issues"]]
        assert fields == ["name", "age"]

    async def test_fractional_json_number_rejected_for_int(self) -> None:
        app = App()
        app.post("/users", validator("json", NewUser), lambda ctx: {"age": ctx.valid("json").age})
        async with TestClient(app) as client:
            fractional = await client.post("/users", json={"name": "Ada", "age": 36.5})
            whole = await client.post("/users", json={"name": "Ada", "age": 36.0})
        assert fractional.status == 400
        assert fractional.json()["issues"] == [
            {"facet": "json", "field": "age", "message": "Invalid value for age: expected int."}
        ]
        assert whole.json() == {"age": 36}

    async def test_malformed_json(self) -> None:
        app = App()
        app.post("/users", validator("json", {"name": [required]}), lambda ctx: "ok")
        async with TestClient(app) as client:
            response = await client.post(
                "/users", body=b"{nope", headers={"content-type": "application/json"}
            )
        assert response.status == 400
        assert response.json()["issues"][0]["message"] == "Malformed JSON body"

    async def test_json_wrong_content_type(self) -> None:
        app = App()
        app.post("/users", validator("json", {"name": [required]}), lambda ctx: "ok")
        async with TestClient(app) as client:
            response = await client.post("/users", body=b"name=x")
        assert response.status == 400
        assert response.json()["issues"][0]["facet"] == "json"

    async def test_form_facet(self) -> None:
        app = App()
        app.post(
            "/signup",
            validator("form", {"email": [required, email]}),
            lambda ctx: {"email": ctx.valid("form")["email"]},
        )
        async with TestClient(app) as client:
            ok = await client.post("/signup", form={"email": "a@b.io"})
            bad = await client.post("/signup", form={"email": "nope"})
        assert ok.json() == {"email": "a@b.io"}
        assert bad.status == 400

    async def test_body_facet_picks_parser_by_content_type(self) -> None:
        app = App()
        app.post(
            "/echo",
            validator("body", {"name": [required]}),
            lambda ctx: {"name": ctx.valid("body")["name"]},
        )
        async with TestClient(app) as client:
            as_json = await client.post("/echo", json={"name": "j"})
            as_form = await client.post("/echo", form={"name": "f"})
            as_text = await client.post("/echo", body=b"x", headers={"content-type": "text/plain"})
        assert as_json.json() == {"name": "j"}
        assert as_form.json() == {"name": "f"}
        assert as_text.status == 400

    async def test_handler_can_still_read_body(self) -> None:
        app = App()

        async def raw(ctx: Context) -> Any:
            return {"raw": (await ctx.read_body()).decode()}

        app.post("/raw", validator("json", {"a": [required]}), raw)
        async with TestClient(app) as client:
            response = await client.post("/raw", json={"a": "1"})
        assert response.json() == {"raw": '{"a": "1"}'}


class TestOtherFacets:
    async def test_path_facet(self) -> None:
        app = App()
        app.get(
            "/items/:id",
            validator("path", {"id": [integer]}),
            lambda ctx: {"id": ctx.valid("path")["id"]},
        )
        async with TestClient(app) as client:
            ok = await client.get("/items/12")
            bad = await client.get("/items/abc")
        assert ok.json() == {"id": "12"}
        assert bad.status == 400
        assert bad.json()["issues"][0]["facet"] == "path"

    async def test_header_and_cookie_facets(self) -> None:
        app = App()
        app.get(
            "/me",
            validator("header", {"x-api-version": [one_of("1", "2")]}),
            validator("cookie", {"session": [required]}),
            lambda ctx: "ok",
        )
        async with TestClient(app) as client:
            ok = await client.get("/me", headers={"X-Api-Version": "2", "Cookie": "session=s"})
            no_cookie = await client.get("/me", headers={"X-Api-Version": "2"})
        assert ok.status == 200
        assert no_cookie.status == 400
        assert no_cookie.json()["issues"][0]["facet"] == "cookie"

    async def test_callable_schema(self) -> None:
        def parse_page(query: Any) -> int:
            page = int(query.get("page", "1"))
            if page < 1:
                raise ValueError("page must be positive")
            return page

        app = App()
        app.get("/list", validator("query", parse_page), lambda ctx: {"page": ctx.valid("query")})
        async with TestClient(app) as client:
            ok = await client.get("/list?page=3")
            bad = await client.get("/list?page=0")
        assert ok.json() == {"page": 3}
        assert bad.status == 400
        assert bad.json()["issues"][0]["message"] == "page must be positive"
