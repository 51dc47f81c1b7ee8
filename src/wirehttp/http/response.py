"""
=============================================================================
HTTP RESPONSE AND RESPONSE WRITER
=============================================================================

Response is the mutable object middleware and handlers build up; the
ResponseWriter turns it into bytes on the socket.

    ┌─ STATUS LINE ──────────────────────────────────────────────────────┐
    │   HTTP/1.1 200 OK                                                  │
    ├─ HEADERS ──────────────────────────────────────────────────────────┤
    │   Content-Length: 5            always first, when the length is    │
    │                                known                               │
    │   Content-Type: text/plain     then the response's own headers in  │
    │                                the order they were set             │
    │   Set-Cookie: id=1; Path=/     then one line per cookie            │
    ├─ EMPTY LINE ───────────────────────────────────────────────────────┤
    ├─ BODY ─────────────────────────────────────────────────────────────┤
    │   hello                                                            │
    └────────────────────────────────────────────────────────────────────┘

Nothing else is added implicitly: a handler that sets status 200 and body
b"hello" produces exactly

    HTTP/1.1 200 OK\\r\\nContent-Length: 5\\r\\n\\r\\nhello

Date and Server headers are opt-in (ServerConfig.server_header).

=============================================================================
STREAMED BODIES
=============================================================================

A body may be an iterable of byte chunks instead of bytes (see
handlers.static.FileBody). The writer sends chunks as they are produced.
If the response also carries a Content-Length header, that length is
announced; otherwise the response is delimited by closing the connection
(requires_close() tells the server). The writer always calls the body's
close() when it is done, including when the client disconnects mid-way.

=============================================================================
"""

import json as _json
import logging
import time
from dataclasses import dataclass, field
from email.utils import formatdate
from typing import Any, Iterable, Optional, Union

from .cookies import Cookie
from .headers import Headers
from .status_codes import HTTPStatus, reason_phrase


logger = logging.getLogger(__name__)

Body = Union[bytes, Iterable[bytes]]

_BYTES_TYPES = (bytes, bytearray, memoryview)


def format_http_date(timestamp: Optional[float] = None) -> str:
    """RFC 7231 IMF-fixdate, e.g. 'Sun, 06 Nov 1994 08:49:37 GMT'."""
    return formatdate(timestamp if timestamp is not None else time.time(), usegmt=True)


def _check_status(status: int) -> int:
    status = int(status)
    if not 100 <= status <= 599:
        raise ValueError(f"Status code out of range: {status}")
    return status


@dataclass
class Response:
    """
    An HTTP response under construction.

    Attributes:
        status: Status code, 100-599.
        headers: Case-insensitive headers, serialized in insertion order.
        body: Bytes, or an iterable of bytes for streamed content.
        cookies: Cookies sent as Set-Cookie headers.
    """

    status: int = 200
    headers: Headers = field(default_factory=Headers)
    body: Body = b""
    cookies: list[Cookie] = field(default_factory=list)

    def __post_init__(self):
        self.status = _check_status(self.status)
        if not isinstance(self.headers, Headers):
            self.headers = Headers(self.headers)
        if isinstance(self.body, str):
            self.body = self.body.encode("utf-8")

    @property
    def reason(self) -> str:
        return reason_phrase(self.status)

    @property
    def status_line(self) -> str:
        return f"HTTP/1.1 {self.status} {self.reason}"

    @property
    def is_streamed(self) -> bool:
        return not isinstance(self.body, _BYTES_TYPES)

    @property
    def content_length(self) -> Optional[int]:
        """Body length if known: len(body), or the Content-Length header of a stream."""
        if not self.is_streamed:
            return len(self.body)
        return self.headers.get_int("Content-Length")

    def set_status(self, status: int) -> "Response":
        self.status = _check_status(status)
        return self

    def set_header(self, name: str, value: str) -> "Response":
        self.headers[name] = value
        return self

    def set_content_type(self, content_type: str) -> "Response":
        self.headers["Content-Type"] = content_type
        return self

    def set_body(self, body: Union[Body, str], content_type: Optional[str] = None) -> "Response":
        """Replace the body. A str is encoded as UTF-8."""
        self.close()
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        if content_type:
            self.set_content_type(content_type)
        return self

    def set_cookie(self, name: str, value: str = "", **attributes: Any) -> Cookie:
        """Add a cookie, replacing an earlier one with the same name and path."""
        cookie = Cookie(name, value, **attributes)
        self.cookies = [c for c in self.cookies if (c.name, c.path) != (cookie.name, cookie.path)]
        self.cookies.append(cookie)
        return cookie

    def delete_cookie(self, name: str, path: Optional[str] = "/") -> Cookie:
        """Ask the client to drop a cookie (empty value, Max-Age=0)."""
        return self.set_cookie(name, "", path=path, max_age=0)

    def close(self) -> None:
        """Release a streamed body (open file handles and the like)."""
        close = getattr(self.body, "close", None)
        if self.is_streamed and callable(close):
            close()


# =============================================================================
# RESPONSE HELPERS
# =============================================================================


def text_response(text: str, status: int = HTTPStatus.OK, content_type: str = "text/plain; charset=utf-8") -> Response:
    return Response(status=status, headers=Headers({"Content-Type": content_type}), body=text.encode("utf-8"))


def json_response(data: Any, status: int = HTTPStatus.OK) -> Response:
    body = _json.dumps(data, separators=(",", ":"), default=str).encode("utf-8")
    return Response(status=status, headers=Headers({"Content-Type": "application/json"}), body=body)


def redirect_response(location: str, status: int = HTTPStatus.FOUND) -> Response:
    return Response(status=status, headers=Headers({"Location": location}))


def error_response(status: int, headers: Optional[dict[str, str]] = None) -> Response:
    """
    Plain-text error response: body is "<code> <reason>".

    Error details stay in the logs; clients only see the status.
    """
    response = text_response(f"{int(status)} {reason_phrase(status)}", status=status)
    for name, value in (headers or {}).items():
        response.headers[name] = value
    return response


# =============================================================================
# RESPONSE WRITER
# =============================================================================


class ResponseWriter:
    """
    Serialize Responses and write them to a connection.

    Args:
        server_header: Add Date and Server headers.
        server_name: Value of the Server header.
    """

    def __init__(self, server_header: bool = False, server_name: str = "wirehttp/1.0"):
        self.server_header = server_header
        self.server_name = server_name

    @staticmethod
    def allows_body(status: int) -> bool:
        """1xx, 204 and 304 responses never carry a body (RFC 7230 3.3.3)."""
        return not (100 <= status < 200 or status in (204, 304))

    @staticmethod
    def requires_close(response: Response) -> bool:
        """A stream of unknown length is delimited by closing the connection."""
        return (
            response.is_streamed
            and response.content_length is None
            and ResponseWriter.allows_body(response.status)
        )

    def serialize_head(self, response: Response) -> bytes:
        """
        Status line and headers, up to and including the blank line.

        Raises:
            ValueError: A header name or value contains CR/LF or is not
                        representable in ISO-8859-1.
        """
        lines = [response.status_line]

        length = response.content_length
        if self.allows_body(response.status) and length is not None:
            lines.append(f"Content-Length: {length}")

        for name, value in response.headers.items():
            if name.lower() == "content-length":
                continue
            lines.append(f"{name}: {value}")

        if self.server_header:
            if "Date" not in response.headers:
                lines.append(f"Date: {format_http_date()}")
            if "Server" not in response.headers:
                lines.append(f"Server: {self.server_name}")

        for cookie in response.cookies:
            lines.append(f"Set-Cookie: {cookie.to_header()}")

        for line in lines:
            if "\r" in line or "\n" in line:
                raise ValueError(f"Header contains a line break: {line[:60]!r}")

        return ("\r\n".join(lines) + "\r\n\r\n").encode("iso-8859-1")

    def to_bytes(self, response: Response, head_only: bool = False) -> bytes:
        """Full wire bytes. Consumes (and closes) a streamed body."""
        try:
            head = self.serialize_head(response)
            if head_only or not self.allows_body(response.status):
                return head
            if response.is_streamed:
                return head + b"".join(response.body)
            return head + bytes(response.body)
        finally:
            response.close()

    def write(self, conn, response: Response, head_only: bool = False) -> bool:
        """
        Write a response to a Connection.

        The head is serialized before anything is sent, so a ValueError
        from a bad header leaves the connection untouched. A streamed body
        that fails part-way is logged and reported as an incomplete write;
        the caller must close the connection.

        Args:
            conn: Object with send(bytes) and send_stream(iterable) methods.
            response: Response to write. Closed when this returns.
            head_only: Send headers only (HEAD requests).

        Returns:
            True if everything was sent, False if the client went away or
            the body failed part-way.
        """
        try:
            head = self.serialize_head(response)
            send_body = not head_only and self.allows_body(response.status)

            if not response.is_streamed:
                return conn.send(head + bytes(response.body) if send_body else head)

            if not conn.send(head):
                return False
            if not send_body:
                return True
            try:
                return conn.send_stream(response.body)
            except Exception as e:
                # Head already sent, so the response can only be truncated
                logger.error(f"Response body failed after the head was sent: {e!r}", exc_info=True)
                return False
        finally:
            response.close()
