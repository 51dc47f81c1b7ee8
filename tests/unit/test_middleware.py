"""
Unit tests for middleware chain execution.
"""

import json
import logging

import pytest

from wirehttp.errors import ForbiddenPath, MiddlewareAborted
from wirehttp.http.context import Context, ContextKey
from wirehttp.http.request import Request
from wirehttp.http.response import Response, text_response
from wirehttp.middleware import REQUEST_ID, LoggingMiddleware, Middleware, MiddlewareChain


def make_ctx(path: str = "/", headers=None) -> Context:
    return Context(Request(method="GET", path=path, headers=headers or {}))


def require_auth(ctx, next):
    if "Authorization" not in ctx.request.headers:
        ctx.send_string("Unauthorized", status=401)
        return
    next()


class TestMiddlewareChain:
    """Tests for MiddlewareChain."""

    def test_handler_only(self):
        chain = MiddlewareChain([], lambda ctx: ctx.send_string("ok"))

        response = chain.execute(make_ctx())

        assert response.body == b"ok"
        assert len(chain) == 1

    def test_order_and_unwinding(self):
        """Middleware run in order; code after next() runs in reverse."""
        calls = []

        def outer(ctx, next):
            calls.append("outer:before")
            next()
            calls.append("outer:after")

        def inner(ctx, next):
            calls.append("inner:before")
            next()
            calls.append("inner:after")

        def handler(ctx):
            calls.append("handler")

        MiddlewareChain([outer, inner], handler).execute(make_ctx())

        assert calls == ["outer:before", "inner:before", "handler", "inner:after", "outer:after"]

    def test_short_circuit(self):
        """A middleware that does not call next() stops the chain."""
        called = []

        def handler(ctx):
            called.append(True)

        response = MiddlewareChain([require_auth], handler).execute(make_ctx())

        assert response.status == 401
        assert response.body == b"Unauthorized"
        assert called == []

    def test_auth_passes(self):
        chain = MiddlewareChain([require_auth], lambda ctx: ctx.send_string("secret"))

        response = chain.execute(make_ctx(headers={"Authorization": "Bearer x"}))

        assert response.status == 200
        assert response.body == b"secret"

    def test_context_values_flow_to_handler(self):
        user = ContextKey("user", str)

        def load_user(ctx, next):
            ctx.set(user, "alice")
            next()

        response = MiddlewareChain([load_user], lambda ctx: ctx.send_string(ctx.get(user))).execute(make_ctx())

        assert response.body == b"alice"

    def test_returned_response_replaces(self):
        chain = MiddlewareChain([], lambda ctx: text_response("made", status=201))

        response = chain.execute(make_ctx())

        assert response.status == 201
        assert response.body == b"made"

    def test_middleware_sees_handler_response(self):
        def stamp(ctx, next):
            next()
            ctx.response.headers["X-Stamp"] = str(ctx.response.status)

        chain = MiddlewareChain([stamp], lambda ctx: Response(status=202))

        assert chain.execute(make_ctx()).headers["X-Stamp"] == "202"

    def test_exception_becomes_aborted(self):
        """Unexpected exceptions are wrapped with the original as cause."""

        def broken(ctx, next):
            raise RuntimeError("boom")

        with pytest.raises(MiddlewareAborted) as exc_info:
            MiddlewareChain([broken], lambda ctx: None).execute(make_ctx())

        error = exc_info.value
        assert isinstance(error.cause, RuntimeError)
        assert error.explicit_status is False
        assert "boom" in error.message

    def test_handler_exception_becomes_aborted(self):
        def handler(ctx):
            raise KeyError("missing")

        with pytest.raises(MiddlewareAborted):
            MiddlewareChain([], handler).execute(make_ctx())

    def test_explicit_abort_keeps_status(self):
        def gate(ctx, next):
            raise MiddlewareAborted("maintenance", status_code=503)

        with pytest.raises(MiddlewareAborted) as exc_info:
            MiddlewareChain([gate], lambda ctx: None).execute(make_ctx())

        assert exc_info.value.status_code == 503
        assert exc_info.value.explicit_status is True

    def test_http_errors_propagate_unchanged(self):
        def handler(ctx):
            raise ForbiddenPath("nope")

        with pytest.raises(ForbiddenPath):
            MiddlewareChain([], handler).execute(make_ctx())

    def test_next_called_twice(self):
        def twice(ctx, next):
            next()
            next()

        with pytest.raises(MiddlewareAborted) as exc_info:
            MiddlewareChain([twice], lambda ctx: None).execute(make_ctx())

        assert isinstance(exc_info.value.cause, RuntimeError)

    def test_class_based_middleware(self):
        class AddHeader(Middleware):
            def __call__(self, ctx, next):
                next()
                ctx.response.headers["X-Added"] = self.name

        response = MiddlewareChain([AddHeader()], lambda ctx: None).execute(make_ctx())

        assert response.headers["X-Added"] == "AddHeader"


class TestLoggingMiddleware:
    """Tests for the access log middleware."""

    def test_text_line(self, caplog):
        chain = MiddlewareChain([LoggingMiddleware()], lambda ctx: ctx.send_string("hello"))

        with caplog.at_level(logging.INFO, logger="wirehttp.access"):
            response = chain.execute(make_ctx("/hello"))

        assert '"GET /hello" 200 5' in caplog.text
        assert "X-Request-ID" in response.headers

    def test_json_line(self, caplog):
        chain = MiddlewareChain([LoggingMiddleware(log_format="json")], lambda ctx: ctx.send_string("hi"))

        with caplog.at_level(logging.INFO, logger="wirehttp.access"):
            chain.execute(make_ctx("/x", headers={"X-Request-ID": "req-1"}))

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["request_id"] == "req-1"
        assert entry["path"] == "/x"
        assert entry["status_code"] == 200

    def test_request_id_in_context(self):
        seen = []

        chain = MiddlewareChain([LoggingMiddleware()], lambda ctx: seen.append(ctx.get(REQUEST_ID)))
        response = chain.execute(make_ctx(headers={"X-Request-ID": "abc"}))

        assert seen == ["abc"]
        assert response.headers["X-Request-ID"] == "abc"

    def test_skip_paths(self, caplog):
        chain = MiddlewareChain([LoggingMiddleware(skip_paths=["/health"])], lambda ctx: None)

        with caplog.at_level(logging.INFO, logger="wirehttp.access"):
            chain.execute(make_ctx("/health"))

        assert caplog.records == []

    def test_logs_failures(self, caplog):
        def handler(ctx):
            raise RuntimeError("boom")

        chain = MiddlewareChain([LoggingMiddleware()], handler)

        with caplog.at_level(logging.INFO, logger="wirehttp.access"):
            with pytest.raises(MiddlewareAborted):
                chain.execute(make_ctx("/fail"))

        assert "Request failed: GET /fail" in caplog.text

    def test_invalid_format(self):
        with pytest.raises(ValueError):
            LoggingMiddleware(log_format="xml")
