"""
Unit tests for HTTP responses and the response writer.
"""

from datetime import datetime, timezone

import pytest

from wirehttp.http.cookies import Cookie, parse_cookie_header
from wirehttp.http.response import (
    Response,
    ResponseWriter,
    error_response,
    format_http_date,
    json_response,
    redirect_response,
    text_response,
)
from wirehttp.http.status_codes import HTTPStatus, reason_phrase


class FakeConnection:
    """Collects what the writer sends; can simulate a client that went away."""

    def __init__(self, fail_after: int = None):
        self.sent = b""
        self.fail_after = fail_after
        self.sends = 0

    def send(self, data: bytes) -> bool:
        if self.fail_after is not None and self.sends >= self.fail_after:
            return False
        self.sends += 1
        self.sent += data
        return True

    def send_stream(self, chunks) -> bool:
        for chunk in chunks:
            if not self.send(chunk):
                return False
        return True


class ClosingChunks:
    """Streamed body that records whether it was closed."""

    def __init__(self, chunks):
        self.chunks = list(chunks)
        self.closed = False

    def __iter__(self):
        return iter(self.chunks)

    def close(self):
        self.closed = True


class TestResponse:
    """Tests for Response class."""

    def test_status_line(self):
        """Test status line generation."""
        assert Response(status=HTTPStatus.OK).status_line == "HTTP/1.1 200 OK"
        assert Response(status=404).status_line == "HTTP/1.1 404 Not Found"

    def test_unknown_status_phrase(self):
        assert Response(status=299).status_line == "HTTP/1.1 299 Unknown"
        assert reason_phrase(799) == "Unknown"

    def test_status_range(self):
        with pytest.raises(ValueError):
            Response(status=99)
        with pytest.raises(ValueError):
            Response().set_status(600)

    def test_set_header_chaining(self):
        response = Response().set_header("X-One", "1").set_header("X-Two", "2")

        assert response.headers["x-one"] == "1"
        assert list(response.headers) == ["X-One", "X-Two"]

    def test_str_body_encoded(self):
        assert Response(body="héllo").body == "héllo".encode("utf-8")

    def test_content_length(self):
        assert Response(body=b"abc").content_length == 3
        assert Response(body=iter([b"a"])).content_length is None

        streamed = Response(body=iter([b"a"]))
        streamed.headers["Content-Length"] = "1"
        assert streamed.content_length == 1

    def test_set_body_closes_previous_stream(self):
        stream = ClosingChunks([b"x"])
        response = Response(body=stream)

        response.set_body(b"replacement")

        assert stream.closed is True
        assert response.body == b"replacement"

    def test_cookie_replaced_by_name_and_path(self):
        response = Response()
        response.set_cookie("id", "1", path="/")
        response.set_cookie("id", "2", path="/")
        response.set_cookie("id", "3", path="/admin")

        assert [(c.value, c.path) for c in response.cookies] == [("2", "/"), ("3", "/admin")]

    def test_delete_cookie(self):
        cookie = Response().delete_cookie("session")

        assert cookie.to_header() == "session=; Path=/; Max-Age=0"


class TestHelpers:
    def test_text_response(self):
        response = text_response("hi", status=201)

        assert response.status == 201
        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"

    def test_json_response(self):
        response = json_response({"a": [1, 2]})

        assert response.body == b'{"a":[1,2]}'
        assert response.headers["Content-Type"] == "application/json"

    def test_redirect_response(self):
        response = redirect_response("/new", status=301)

        assert response.status == 301
        assert response.headers["Location"] == "/new"

    def test_error_response(self):
        response = error_response(405, {"Allow": "GET"})

        assert response.status == 405
        assert response.body == b"405 Method Not Allowed"
        assert response.headers["Allow"] == "GET"

    def test_format_http_date(self):
        assert format_http_date(784111777) == "Sun, 06 Nov 1994 08:49:37 GMT"


class TestResponseWriter:
    """Tests for serialization."""

    def test_exact_bytes(self):
        """Nothing but Content-Length is added implicitly."""
        response = Response(status=200, body=b"hello")

        assert ResponseWriter().to_bytes(response) == b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\n\r\nhello"

    def test_header_order(self):
        """Content-Length first, then headers as set, then cookies."""
        response = Response(body=b"{}")
        response.set_header("Content-Type", "application/json")
        response.set_header("X-Custom", "value")
        response.set_cookie("id", "1")

        assert ResponseWriter().to_bytes(response) == (
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Length: 2\r\n"
            b"Content-Type: application/json\r\n"
            b"X-Custom: value\r\n"
            b"Set-Cookie: id=1\r\n"
            b"\r\n"
            b"{}"
        )

    def test_explicit_content_length_not_duplicated(self):
        response = Response(body=b"abc")
        response.headers["Content-Length"] = "999"

        wire = ResponseWriter().to_bytes(response)

        assert wire.count(b"Content-Length") == 1
        assert b"Content-Length: 3\r\n" in wire

    def test_empty_body(self):
        assert ResponseWriter().to_bytes(Response()) == b"HTTP/1.1 200 OK\r\nContent-Length: 0\r\n\r\n"

    @pytest.mark.parametrize("status", [204, 304])
    def test_no_body_statuses(self, status: int):
        response = Response(status=status, body=b"ignored")

        wire = ResponseWriter().to_bytes(response)

        assert b"Content-Length" not in wire
        assert wire.endswith(b"\r\n\r\n")

    def test_head_only(self):
        """HEAD keeps Content-Length but drops the body."""
        wire = ResponseWriter().to_bytes(Response(body=b"hello"), head_only=True)

        assert wire == b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\n\r\n"

    def test_server_header_opt_in(self):
        wire = ResponseWriter(server_header=True, server_name="test/1").to_bytes(Response())

        assert b"Server: test/1\r\n" in wire
        assert b"Date: " in wire

    def test_header_injection_rejected(self):
        response = Response()
        response.headers["X-Bad"] = "a\r\nSet-Cookie: evil=1"

        with pytest.raises(ValueError):
            ResponseWriter().serialize_head(response)

    def test_round_trip(self):
        """Serialized output parses back to the same status, headers and body."""
        response = Response(status=201, body=b"created")
        response.set_header("Content-Type", "text/plain")
        response.set_header("Location", "/items/1")

        head, body = ResponseWriter().to_bytes(response).split(b"\r\n\r\n", 1)
        status_line, *header_lines = head.decode("iso-8859-1").split("\r\n")
        headers = dict(line.split(": ", 1) for line in header_lines)

        assert status_line == "HTTP/1.1 201 Created"
        assert headers == {"Content-Length": "7", "Content-Type": "text/plain", "Location": "/items/1"}
        assert body == b"created"

    def test_requires_close(self):
        assert ResponseWriter.requires_close(Response(body=b"x")) is False
        assert ResponseWriter.requires_close(Response(body=iter([b"x"]))) is True
        assert ResponseWriter.requires_close(Response(status=204, body=iter([]))) is False

        sized = Response(body=iter([b"x"]))
        sized.headers["Content-Length"] = "1"
        assert ResponseWriter.requires_close(sized) is False


class TestWrite:
    """Tests for writing to a connection."""

    def test_write_bytes_body(self):
        conn = FakeConnection()

        assert ResponseWriter().write(conn, Response(body=b"hello")) is True
        assert conn.sent == b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\n\r\nhello"

    def test_write_stream(self):
        conn = FakeConnection()
        body = ClosingChunks([b"hel", b"lo"])
        response = Response(body=body)
        response.headers["Content-Length"] = "5"

        assert ResponseWriter().write(conn, response) is True
        assert conn.sent == b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\n\r\nhello"
        assert body.closed is True

    def test_stream_closed_when_client_disconnects(self):
        conn = FakeConnection(fail_after=1)
        body = ClosingChunks([b"a", b"b"])

        assert ResponseWriter().write(conn, Response(body=body)) is False
        assert body.closed is True

    def test_stream_closed_on_head(self):
        conn = FakeConnection()
        body = ClosingChunks([b"data"])

        ResponseWriter().write(conn, Response(body=body), head_only=True)

        assert body.closed is True
        assert conn.sent.endswith(b"\r\n\r\n")

    def test_stream_failure_after_head(self):
        """A body that fails part-way is cut short, never followed by a second response."""
        conn = FakeConnection()

        def chunks():
            yield b"first"
            raise ValueError("broken generator")

        response = Response(body=chunks())
        response.headers["Content-Length"] = "100"

        assert ResponseWriter().write(conn, response) is False
        assert conn.sent == b"HTTP/1.1 200 OK\r\nContent-Length: 100\r\n\r\nfirst"

    def test_bad_header_sends_nothing(self):
        conn = FakeConnection()
        response = Response()
        response.headers["X-Bad"] = "line\nbreak"

        with pytest.raises(ValueError):
            ResponseWriter().write(conn, response)
        assert conn.sent == b""


class TestCookies:
    """Tests for cookie parsing and Set-Cookie rendering."""

    def test_parse(self):
        assert parse_cookie_header('a=1; b="two"; junk; c=') == {"a": "1", "b": "two", "c": ""}
        assert parse_cookie_header(None) == {}

    def test_full_attributes(self):
        cookie = Cookie(
            "session",
            "abc",
            path="/",
            domain="example.com",
            expires=datetime(2030, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
            max_age=60,
            secure=True,
            http_only=True,
            same_site="Lax",
        )

        assert cookie.to_header() == (
            "session=abc; Path=/; Domain=example.com; "
            "Expires=Wed, 02 Jan 2030 03:04:05 GMT; Max-Age=60; Secure; HttpOnly; SameSite=Lax"
        )

    @pytest.mark.parametrize("name,value", [("", "v"), ("a b", "v"), ("a", "x;y")])
    def test_invalid(self, name: str, value: str):
        with pytest.raises(ValueError):
            Cookie(name, value)

    def test_invalid_same_site(self):
        with pytest.raises(ValueError):
            Cookie("a", "b", same_site="lax")
