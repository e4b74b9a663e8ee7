"""Tests for wren.context: request accessors, variables, response builder."""

import pytest

from wren.context import Context, Key, context_var, get_context
from wren.errors import BodyConsumedError, ContextFinalizedError
from wren.http.request import Request
from wren.http.response import Response, StreamingResponse


def _ctx(method: str = "GET", url: str = "/", **kwargs: object) -> Context:
    return Context(Request.build(method, url, **kwargs))  # type: ignore[arg-type]


class TestRequestAccessors:
    def test_basic(self) -> None:
        request = Request.build(
            "get",
            "/search?q=wren&tag=a&tag=b",
            headers={"X-Token": "t", "Cookie": "session=abc"},
        ).with_path_params({"id": "7"})
        ctx = Context(request)

        assert ctx.method == "GET"
        assert ctx.path == "/search"
        assert ctx.query.get("q") == "wren"
        assert ctx.query.get_list("tag") == ["a", "b"]
        assert ctx.headers.get("x-token") == "t"
        assert ctx.cookies == {"session": "abc"}
        assert ctx.param("id") == "7"
        assert ctx.param("missing") is None
        assert dict(ctx.params) == {"id": "7"}

    def test_params_read_only(self) -> None:
        ctx = Context(Request.build("GET", "/").with_path_params({"id": "1"}))
        with pytest.raises(TypeError):
            ctx.params["id"] = "2"  # type: ignore[index]


class TestVariables:
    def test_set_get_has(self) -> None:
        ctx = _ctx()
        assert ctx.get("user") is None
        assert ctx.get("user", "anon") == "anon"
        assert not ctx.has("user")
        ctx.set("user", "alice")
        assert ctx.get("user") == "alice"
        assert ctx.has("user")

    def test_last_write_wins(self) -> None:
        ctx = _ctx()
        ctx.set("n", 1)
        ctx.set("n", 2)
        assert ctx.get("n") == 2

    def test_typed_key(self) -> None:
        user: Key[str] = Key("user")
        other: Key[str] = Key("user")
        ctx = _ctx()
        ctx.set(user, "alice")
        assert ctx.get(user) == "alice"
        # Keys compare by identity, not by name
        assert ctx.get(other) is None
        assert ctx.get("user") is None

    def test_vars_view_read_only(self) -> None:
        ctx = _ctx()
        ctx.set("a", 1)
        assert dict(ctx.vars) == {"a": 1}
        with pytest.raises(TypeError):
            ctx.vars["b"] = 2  # type: ignore[index]


class TestResponseBuilder:
    def test_defaults(self) -> None:
        ctx = _ctx()
        response = ctx.response
        assert isinstance(response, Response)
        assert response.status == 200
        assert response.body == ""
        assert not ctx.responded

    def test_set_header_replaces(self) -> None:
        ctx = _ctx()
        ctx.set_header("X-A", "1")
        ctx.set_header("x-a", "2")
        assert ctx.response.headers == (("x-a", "2"),)

    def test_set_header_append(self) -> None:
        ctx = _ctx()
        ctx.set_header("Vary", "Origin")
        ctx.set_header("Vary", "Accept", append=True)
        assert [v for _, v in ctx.response.headers] == ["Origin", "Accept"]

    def test_delete_header(self) -> None:
        ctx = _ctx()
        ctx.set_header("X-A", "1")
        ctx.delete_header("x-a")
        assert ctx.response.headers == ()
        assert ctx.response_header("X-A") is None

    def test_content_type_header_sets_content_type(self) -> None:
        ctx = _ctx()
        ctx.set_header("Content-Type", "text/csv")
        assert ctx.response.content_type == "text/csv"
        assert ctx.response_header("content-type") == "text/csv"

    def test_status_and_body(self) -> None:
        ctx = _ctx()
        ctx.set_status(201)
        ctx.set_body(b"raw", content_type="application/octet-stream")
        response = ctx.response
        assert isinstance(response, Response)
        assert response.status == 201
        assert response.body == b"raw"
        assert response.content_type == "application/octet-stream"
        assert ctx.responded

    def test_iterator_body_builds_streaming_response(self) -> None:
        ctx = _ctx()
        ctx.set_body(iter(["a", "b"]))
        assert isinstance(ctx.response, StreamingResponse)

    def test_cookies(self) -> None:
        ctx = _ctx()
        ctx.set_cookie("session", "abc", max_age=60)
        ctx.set_cookie("session", "def")
        ctx.delete_cookie("old")
        cookies = ctx.response.cookies
        assert [(c.name, c.value) for c in cookies] == [("session", "def"), ("old", "")]
        assert cookies[1].max_age == 0

    def test_helpers_use_builder_status(self) -> None:
        ctx = _ctx()
        ctx.set_status(202)
        assert ctx.text("queued").status == 202
        assert ctx.json({"a": 1}, 201).status == 201

    def test_helper_content_types(self) -> None:
        ctx = _ctx()
        assert ctx.text("x").content_type.startswith("text/plain")
        assert ctx.html("<p>").content_type.startswith("text/html")
        assert ctx.json([1]).content_type.startswith("application/json")
        assert ctx.json([1]).body == "[1]"
        assert ctx.respond(b"x", content_type="image/png").content_type == "image/png"

    def test_redirect(self) -> None:
        response = _ctx().redirect("/login", 303)
        assert response.status == 303
        assert response.header("Location") == "/login"

    def test_absorb_merges_headers(self) -> None:
        ctx = _ctx()
        ctx.set_header("X-Keep", "1")
        ctx.set_header("X-Replace", "old")
        ctx.absorb(Response("body", status=201, headers=(("X-Replace", "new"),)))
        response = ctx.response
        assert response.status == 201
        assert response.header("X-Keep") == "1"
        assert response.header("X-Replace") == "new"

    async def test_not_found_helper_default(self) -> None:
        response = await _ctx("GET", "/nope").not_found()
        assert response.status == 404
        assert isinstance(response, Response)
        assert response.json() == {"error": "not_found", "method": "GET", "path": "/nope"}

    async def test_not_found_helper_custom(self) -> None:
        ctx = Context(Request.build("GET", "/"), not_found=lambda c: ("gone", 410))
        response = await ctx.not_found()
        assert response.status == 410


class TestFinalization:
    def test_finalize_is_idempotent(self) -> None:
        ctx = _ctx()
        ctx.set_body("done")
        first = ctx.finalize()
        assert ctx.finalize() is first
        assert ctx.response is first
        assert ctx.finalized

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda c: c.set_status(500),
            lambda c: c.set_header("X-A", "1"),
            lambda c: c.delete_header("X-A"),
            lambda c: c.set_body("late"),
            lambda c: c.set_cookie("a", "b"),
            lambda c: c.delete_cookie("a"),
            lambda c: c.absorb("late"),
        ],
    )
    def test_mutation_after_finalize_raises(self, mutate) -> None:  # noqa: ANN001
        ctx = _ctx()
        ctx.finalize()
        with pytest.raises(ContextFinalizedError):
            mutate(ctx)


class TestValidData:
    def test_missing_facet(self) -> None:
        with pytest.raises(LookupError, match="query"):
            _ctx().valid("query")

    def test_dict_values_merge(self) -> None:
        ctx = _ctx()
        ctx._store_valid("query", {"a": "1"})
        ctx._store_valid("query", {"b": "2"})
        assert ctx.valid("query") == {"a": "1", "b": "2"}


class TestBody:
    async def test_body_read_once_and_cached(self) -> None:
        ctx = _ctx("POST", "/", body=b'{"a": 1}', headers={"content-type": "application/json"})
        assert await ctx.read_body() == b'{"a": 1}'
        assert await ctx.req.body() == b'{"a": 1}'
        assert await ctx.req.json() == {"a": 1}
        assert ctx.req.body_consumed

    async def test_stream_twice_raises(self) -> None:
        ctx = _ctx("POST", "/", body=b"abc")
        chunks = [chunk async for chunk in ctx.req.stream()]
        assert chunks == [b"abc"]
        with pytest.raises(BodyConsumedError):
            async for _ in ctx.req.stream():
                pass


class TestCleanup:
    async def test_callbacks_run_in_reverse(self) -> None:
        order: list[str] = []
        ctx = _ctx()

        async def second() -> None:
            order.append("second")

        ctx.on_close(lambda: order.append("first"))
        ctx.on_close(second)
        await ctx.close()
        assert order == ["second", "first"]

    async def test_failing_callback_does_not_stop_others(self) -> None:
        order: list[str] = []
        ctx = _ctx()

        def broken() -> None:
            raise RuntimeError("cleanup failed")

        ctx.on_close(lambda: order.append("ran"))
        ctx.on_close(broken)
        await ctx.close()
        assert order == ["ran"]


class TestActiveContext:
    def test_outside_request(self) -> None:
        with pytest.raises(LookupError):
            get_context()

    def test_inside_request(self) -> None:
        ctx = _ctx()
        token = context_var.set(ctx)
        try:
            assert get_context() is ctx
        finally:
            context_var.reset(token)
