"""Tests for wren.middleware.chain: stage composition and execution."""

import asyncio
from typing import Any

import pytest

from wren.context import Context
from wren.errors import ChainProtocolError, HandlerError, HTTPError
from wren.http.request import Request
from wren.http.response import Response
from wren.middleware.chain import (
    Chain,
    MiddlewareEntry,
    build_chain,
    build_not_found_chain,
    handler_stage,
)
from wren.routing.router import RouteTableBuilder
from wren.validation import validator


def _ctx(method: str = "GET", path: str = "/") -> Context:
    return Context(Request.build(method, path))


def _recorder(log: list[str], name: str) -> Any:
    async def mw(ctx: Context, next: Any) -> None:
        log.append(f"before-{name}")
        await next()
        log.append(f"after-{name}")

    mw.__name__ = name
    return mw


class TestOrdering:
    async def test_onion_order(self) -> None:
        log: list[str] = []

        async def handler(ctx: Context) -> str:
            log.append("handler")
            return "ok"

        chain = Chain(
            [
                _recorder(log, "1"),
                _recorder(log, "2"),
                _recorder(log, "3"),
                handler_stage(handler),
            ]
        )
        response = await chain.run(_ctx())

        assert response.status == 200
        assert log == [
            "before-1",
            "before-2",
            "before-3",
            "handler",
            "after-3",
            "after-2",
            "after-1",
        ]

    async def test_sync_stages(self) -> None:
        def answer(ctx: Context, next: Any) -> str:
            ctx.set_header("X-Sync", "1")
            return "from sync"

        response = await Chain([answer]).run(_ctx())
        assert isinstance(response, Response)
        assert response.text == "from sync"
        assert response.header("X-Sync") == "1"


class TestShortCircuit:
    async def test_stage_without_next_stops_chain(self) -> None:
        log: list[str] = []
        called = False

        async def guard(ctx: Context, next: Any) -> Response:
            log.append("guard")
            return ctx.text("blocked", 403)

        async def handler(ctx: Context) -> str:
            nonlocal called
            called = True
            return "ok"

        chain = Chain([_recorder(log, "outer"), guard, handler_stage(handler)])
        response = await chain.run(_ctx())

        assert called is False
        assert response.status == 403
        assert isinstance(response, Response)
        assert response.text == "blocked"
        assert log == ["before-outer", "guard", "after-outer"]


class TestResponseMerging:
    async def test_after_middleware_adds_header(self) -> None:
        async def tag(ctx: Context, next: Any) -> Response:
            response = await next()
            return response.with_header("X-A", "1")

        async def handler(ctx: Context) -> str:
            ctx.set_header("X-B", "2")
            return "ok"

        response = await Chain([tag, handler_stage(handler)]).run(_ctx())
        assert isinstance(response, Response)
        assert response.text == "ok"
        assert response.header("X-A") == "1"
        assert response.header("X-B") == "2"
        assert len([h for h in response.headers if h[0] == "X-B"]) == 1

    async def test_returned_header_replaces_same_name(self) -> None:
        async def preset(ctx: Context, next: Any) -> None:
            ctx.set_header("Cache-Control", "no-store")
            await next()

        async def handler(ctx: Context) -> Response:
            return Response("ok", headers=(("Cache-Control", "max-age=60"),))

        response = await Chain([preset, handler_stage(handler)]).run(_ctx())
        assert [v for k, v in response.headers if k == "Cache-Control"] == ["max-age=60"]

    async def test_dict_return_is_json(self) -> None:
        async def handler(ctx: Context) -> dict[str, int]:
            return {"n": 1}

        response = await Chain([handler_stage(handler)]).run(_ctx())
        assert isinstance(response, Response)
        assert response.content_type.startswith("application/json")
        assert response.json() == {"n": 1}

    async def test_context_finalized_after_run(self) -> None:
        ctx = _ctx()
        await Chain([handler_stage(lambda c: "ok")]).run(ctx)
        assert ctx.finalized


class TestErrors:
    async def test_next_twice_is_protocol_error(self) -> None:
        async def greedy(ctx: Context, next: Any) -> None:
            await next()
            await next()

        ctx = _ctx()
        response = await Chain([greedy, handler_stage(lambda c: "ok")]).run(ctx)

        assert isinstance(ctx.error, ChainProtocolError)
        assert response.status == 500

    async def test_error_terminal_called_exactly_once(self) -> None:
        calls: list[BaseException] = []

        async def on_error(error: BaseException, ctx: Context) -> Any:
            calls.append(error)
            return ctx.text(f"handled {type(error).__name__}", 503)

        async def boom(ctx: Context) -> str:
            raise ValueError("boom")

        log: list[str] = []
        chain = Chain(
            [_recorder(log, "1"), _recorder(log, "2"), handler_stage(boom)],
            on_error=on_error,
        )
        response = await chain.run(_ctx())

        assert len(calls) == 1
        assert isinstance(calls[0], ValueError)
        assert response.status == 503
        assert isinstance(response, Response)
        assert response.text == "handled ValueError"
        # After-code of the outer stages is skipped by the exception
        assert log == ["before-1", "before-2"]

    async def test_failing_error_terminal_yields_generic_500(self) -> None:
        def on_error(error: BaseException, ctx: Context) -> Any:
            raise RuntimeError("terminal broke")

        def boom(ctx: Context) -> str:
            raise ValueError("boom")

        response = await Chain([handler_stage(boom)], on_error=on_error).run(_ctx())
        assert response.status == 500
        assert isinstance(response, Response)
        assert response.json() == {"error": "internal_server_error"}

    async def test_default_terminal_maps_http_error(self) -> None:
        def forbidden(ctx: Context) -> str:
            raise HTTPError(status=403, detail="nope", headers=(("X-Reason", "test"),))

        response = await Chain([handler_stage(forbidden)]).run(_ctx())
        assert response.status == 403
        assert response.header("X-Reason") == "test"
        assert isinstance(response, Response)
        assert response.json() == {"error": "forbidden", "message": "nope"}

    async def test_builder_reset_before_error_terminal(self) -> None:
        async def preset(ctx: Context, next: Any) -> None:
            ctx.set_header("X-Before", "yes")
            await next()

        def boom(ctx: Context) -> str:
            raise ValueError("boom")

        response = await Chain([preset, handler_stage(boom)]).run(_ctx())
        assert response.status == 500
        assert response.header("X-Before") is None

    async def test_no_response_is_handler_error(self) -> None:
        ctx = _ctx()
        response = await Chain([handler_stage(lambda c: None)]).run(ctx)
        assert isinstance(ctx.error, HandlerError)
        assert response.status == 500

    async def test_unconvertible_return_value(self) -> None:
        ctx = _ctx()
        response = await Chain([handler_stage(lambda c: object())]).run(ctx)
        assert isinstance(ctx.error, HandlerError)
        assert response.status == 500

    async def test_outer_middleware_may_catch(self) -> None:
        async def rescue(ctx: Context, next: Any) -> Any:
            try:
                await next()
            except ValueError:
                return ctx.text("rescued", 200)
            return None

        def boom(ctx: Context) -> str:
            raise ValueError("boom")

        ctx = _ctx()
        response = await Chain([rescue, handler_stage(boom)]).run(ctx)
        assert isinstance(response, Response)
        assert response.text == "rescued"
        assert ctx.error is None

    async def test_cancellation_propagates(self) -> None:
        called = False

        def on_error(error: BaseException, ctx: Context) -> str:
            nonlocal called
            called = True
            return "converted"

        async def cancelled(ctx: Context) -> str:
            raise asyncio.CancelledError

        ctx = _ctx()
        with pytest.raises(asyncio.CancelledError):
            await Chain([handler_stage(cancelled)], on_error=on_error).run(ctx)
        assert called is False
        assert not ctx.finalized


class TestComposition:
    def _route(self, pattern: str, *, middleware=(), validators=()):  # noqa: ANN001, ANN202
        builder = RouteTableBuilder()
        return builder.add(
            "GET",
            pattern,
            handler=lambda ctx: "ok",
            middleware=middleware,
            validators=validators,
        )

    def test_order_global_scoped_route_validators_handler(self) -> None:
        def g1(ctx, next): ...  # noqa: ANN001, ANN202, E704
        def g2(ctx, next): ...  # noqa: ANN001, ANN202, E704
        def api(ctx, next): ...  # noqa: ANN001, ANN202, E704
        def other(ctx, next): ...  # noqa: ANN001, ANN202, E704
        def own(ctx, next): ...  # noqa: ANN001, ANN202, E704

        q1 = validator("query", {"a": []})
        j1 = validator("json", {"b": []})
        q2 = validator("query", {"c": []})

        entries = [
            MiddlewareEntry.create("/api/*", api),
            MiddlewareEntry.create("*", g1),
            MiddlewareEntry.create("/other", other),
            MiddlewareEntry.create("/", g2),
        ]
        route = self._route("/api/users/:id", middleware=(own,), validators=(q1, j1, q2))
        chain = build_chain(route, entries)

        assert chain.stages[:6] == (g1, g2, api, own, q1, q2)
        assert chain.stages[6] is j1
        assert len(chain) == 8

    def test_prefix_covers_exact_path(self) -> None:
        def api(ctx, next): ...  # noqa: ANN001, ANN202, E704

        entries = [MiddlewareEntry.create("/api", api)]
        assert build_chain(self._route("/api"), entries).stages[0] is api
        assert api not in build_chain(self._route("/apiv2"), entries).stages

    def test_not_found_chain_has_only_global(self) -> None:
        def g(ctx, next): ...  # noqa: ANN001, ANN202, E704
        def api(ctx, next): ...  # noqa: ANN001, ANN202, E704

        entries = [MiddlewareEntry.create("*", g), MiddlewareEntry.create("/api/*", api)]
        chain = build_not_found_chain(entries)
        assert chain.stages[0] is g
        assert len(chain) == 2

    async def test_not_found_chain_default_body(self) -> None:
        response = await build_not_found_chain([]).run(_ctx("POST", "/missing"))
        assert response.status == 404
        assert isinstance(response, Response)
        assert response.json() == {"error": "not_found", "method": "POST", "path": "/missing"}

    def test_entry_globality(self) -> None:
        def mw(ctx, next): ...  # noqa: ANN001, ANN202, E704

        assert MiddlewareEntry.create("*", mw).is_global
        assert MiddlewareEntry.create("/", mw).is_global
        assert MiddlewareEntry.create("/*", mw).is_global
        assert not MiddlewareEntry.create("/api", mw).is_global
