"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Reads one HTTP/1.x request from a ByteStreamReader and produces an
immutable Request. Implements the request side of RFC 7230 minus chunked
transfer coding.

    ┌─ REQUEST LINE ─────────────────────────────────────────────────────┐
    │   POST /users/42?tab=profile HTTP/1.1                              │
    │   ─┬── ─────┬──── ────┬─────  ───┬───                              │
    │  Method    Path     Query     Version                              │
    ├─ HEADERS ──────────────────────────────────────────────────────────┤
    │   Host: example.com                                                │
    │   Content-Type: application/x-www-form-urlencoded                  │
    │   Content-Length: 17                                               │
    ├─ EMPTY LINE ───────────────────────────────────────────────────────┤
    │                                                                    │
    ├─ BODY (exactly Content-Length bytes) ──────────────────────────────┤
    │   name=Alice&age=30                                                │
    └────────────────────────────────────────────────────────────────────┘

=============================================================================
PARSING RULES
=============================================================================

REQUEST LINE   Exactly three tokens separated by single spaces. Unknown
               methods, targets not starting with "/" and versions other
               than HTTP/1.0 and HTTP/1.1 raise MalformedRequestLine.
               Blank lines before the request line are skipped.

HEADERS        "Name: value". A repeated name is folded into one value
               joined with ", " (RFC 7230 section 3.2.2). Cookie is the
               exception and joins with "; " as RFC 6265 requires.
               Obsolete line folding (leading whitespace) continues the
               previous header.

TARGET         Split at the first "?". Each path segment is percent-decoded
               on its own, so "%2F" never creates a new segment. Query keys
               and values are decoded too; the last value of a repeated key
               wins.

BODY           Content-Length bytes, or nothing. Any Transfer-Encoding
               other than identity raises UnsupportedEncoding.
               x-www-form-urlencoded bodies are also decoded into
               Request.form.

=============================================================================
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional
from urllib.parse import parse_qsl, unquote, urlsplit

from ..core.stream import ByteStreamReader
from ..errors import (
    HeaderTooLarge,
    LineTooLong,
    MalformedHeader,
    MalformedRequestLine,
    PayloadTooLarge,
    RequestParseError,
    UnsupportedEncoding,
)
from .cookies import parse_cookie_header
from .headers import Headers
from .status_codes import HTTPStatus


logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

_EMPTY: Mapping[str, str] = MappingProxyType({})


class HTTPMethod(str, Enum):
    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"
    CONNECT = "CONNECT"

    def __str__(self) -> str:
        return self.value


def split_path(path: str) -> tuple[str, ...]:
    """'/users//42/' -> ('users', '42'). Empty segments are dropped."""
    return tuple(segment for segment in path.split("/") if segment)


@dataclass(frozen=True)
class Request:
    """
    A parsed HTTP request. Immutable.

    Attributes:
        method: The request method.
        path: Percent-decoded path, without the query string.
        version: "HTTP/1.0" or "HTTP/1.1".
        headers: Read-only, case-insensitive headers.
        query: Decoded query parameters, last value wins.
        body: Raw body bytes.
        form: Decoded x-www-form-urlencoded body, empty otherwise.
        cookies: Cookies from the Cookie header.
        path_segments: Decoded path segments, used by the router.
        target: The request target exactly as sent.
        client_address: (ip, port) of the peer, if known.
    """

    method: HTTPMethod
    path: str
    version: str = "HTTP/1.1"
    headers: Headers = field(default_factory=Headers)
    query: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    body: bytes = b""
    form: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    cookies: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    path_segments: tuple[str, ...] = ()
    target: str = ""
    client_address: Optional[tuple] = None

    def __post_init__(self):
        if not isinstance(self.method, HTTPMethod):
            object.__setattr__(self, "method", HTTPMethod(self.method))
        if not isinstance(self.headers, Headers):
            object.__setattr__(self, "headers", Headers(self.headers))
        self.headers.freeze()
        for name in ("query", "form", "cookies"):
            value = getattr(self, name)
            if not isinstance(value, MappingProxyType):
                object.__setattr__(self, name, MappingProxyType(dict(value)))
        if not self.path_segments:
            object.__setattr__(self, "path_segments", split_path(self.path))
        if not self.target:
            object.__setattr__(self, "target", self.path)

    @property
    def content_type(self) -> Optional[str]:
        """Media type without parameters, lowercased: 'text/html; charset=x' -> 'text/html'."""
        value = self.headers.get("Content-Type")
        if value is None:
            return None
        return value.split(";", 1)[0].strip().lower()

    @property
    def content_length(self) -> int:
        return len(self.body)

    @property
    def host(self) -> str:
        return self.headers.get("Host", "")

    @property
    def is_json(self) -> bool:
        return self.content_type == "application/json"

    @property
    def json(self) -> Any:
        """Body decoded as JSON. Raises ValueError on invalid JSON."""
        if not self.body:
            return None
        return json.loads(self.body)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client wants the connection kept open.

        HTTP/1.1 is persistent unless "Connection: close" is sent;
        HTTP/1.0 only with an explicit "Connection: keep-alive".
        """
        tokens = {token.strip().lower() for token in self.headers.get("Connection", "").split(",")}
        if self.version == "HTTP/1.1":
            return "close" not in tokens
        return "keep-alive" in tokens

    def get_header(self, name: str, default: str = "") -> str:
        return self.headers.get(name, default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.query.get(name, default)


class RequestParser:
    """
    Streaming HTTP/1.x request parser.

    One parser is shared by every connection: it keeps no per-request
    state, everything lives on the stack of parse().

    Usage:
        parser = RequestParser()
        request = parser.parse(connection.reader, connection.address)
    """

    VERSION_PATTERN = re.compile(r"^HTTP/1\.[01]$")

    # Control characters and spaces are never valid inside a request target
    INVALID_TARGET_CHARS = re.compile(r"[\x00-\x20\x7f]")

    MAX_LEADING_BLANK_LINES = 8

    def __init__(self, max_headers: int = 100, max_body_size: int = 10 * 1024 * 1024):
        self.max_headers = max_headers
        self.max_body_size = max_body_size

    def parse(self, reader: ByteStreamReader, client_address: Optional[tuple] = None) -> Request:
        """
        Read and parse one request.

        Raises:
            RequestParseError: Any subclass; the request is unusable and
                               the connection must be closed.
            ConnectionClosed: The peer closed before a complete head.
            TimeoutError: The socket timed out.
        """
        method, target, version = self._parse_request_line(self._read_request_line(reader))
        headers = self._parse_headers(reader)
        path, segments, query = self._parse_target(target)
        body = self._read_body(reader, headers)

        form: dict[str, str] = {}
        content_type = headers.get("Content-Type", "").split(";", 1)[0].strip().lower()
        if content_type == FORM_CONTENT_TYPE and body:
            form = dict(parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True))

        return Request(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query=query,
            body=body,
            form=form,
            cookies=parse_cookie_header(headers.get("Cookie")),
            path_segments=segments,
            target=target,
            client_address=client_address,
        )

    # =========================================================================
    # REQUEST LINE
    # =========================================================================

    def _read_request_line(self, reader: ByteStreamReader) -> str:
        try:
            for _ in range(self.MAX_LEADING_BLANK_LINES + 1):
                line = reader.read_line()
                if line:
                    return line
        except LineTooLong as e:
            raise RequestParseError("Request line too long", status_code=HTTPStatus.URI_TOO_LONG) from e
        raise MalformedRequestLine("Too many blank lines before the request line")

    def _parse_request_line(self, line: str) -> tuple[HTTPMethod, str, str]:
        parts = line.split(" ")
        if len(parts) != 3 or not all(parts):
            raise MalformedRequestLine(f"Malformed request line: {line[:100]!r}")

        method_text, target, version = parts

        try:
            method = HTTPMethod(method_text)
        except ValueError:
            raise MalformedRequestLine(f"Unknown method: {method_text[:20]!r}") from None

        if not self.VERSION_PATTERN.match(version):
            raise MalformedRequestLine(f"Unsupported HTTP version: {version[:20]!r}")

        if self.INVALID_TARGET_CHARS.search(target):
            raise MalformedRequestLine("Request target contains control characters")

        if target.startswith(("http://", "https://")):
            # Absolute form, as sent to proxies: keep path and query only
            parts = urlsplit(target)
            target = (parts.path or "/") + (f"?{parts.query}" if parts.query else "")

        if not target.startswith("/"):
            raise MalformedRequestLine(f"Request target must start with '/': {target[:100]!r}")

        return method, target, version

    # =========================================================================
    # HEADERS
    # =========================================================================

    def _parse_headers(self, reader: ByteStreamReader) -> Headers:
        headers = Headers()
        last_name: Optional[str] = None
        count = 0

        while True:
            line = reader.read_line()
            if not line:
                return headers

            if line[0] in " \t":
                if last_name is None:
                    raise MalformedHeader("Continuation line before the first header")
                headers[last_name] = f"{headers[last_name]} {line.strip()}"
                continue

            name, sep, value = line.partition(":")
            if not sep or not name or name != name.strip():
                raise MalformedHeader(f"Malformed header line: {line[:100]!r}")

            count += 1
            if count > self.max_headers:
                raise HeaderTooLarge(f"More than {self.max_headers} headers")

            separator = "; " if name.lower() == "cookie" else ", "
            headers.add(name, value.strip(), separator)
            last_name = name

    # =========================================================================
    # TARGET
    # =========================================================================

    def _parse_target(self, target: str) -> tuple[str, tuple[str, ...], dict[str, str]]:
        raw_path, _, raw_query = target.partition("?")
        raw_path, _, _ = raw_path.partition("#")
        raw_query, _, _ = raw_query.partition("#")

        segments = tuple(unquote(segment) for segment in split_path(raw_path))
        path = unquote(raw_path)
        query = dict(parse_qsl(raw_query, keep_blank_values=True))
        return path, segments, query

    # =========================================================================
    # BODY
    # =========================================================================

    def _read_body(self, reader: ByteStreamReader, headers: Headers) -> bytes:
        transfer_encoding = headers.get("Transfer-Encoding")
        if transfer_encoding is not None and transfer_encoding.strip().lower() != "identity":
            raise UnsupportedEncoding(f"Transfer-Encoding not supported: {transfer_encoding!r}")

        raw_length = headers.get("Content-Length")
        if raw_length is None:
            return b""

        # Duplicates were folded to "n, n": they must agree (RFC 7230 3.3.2)
        values = {value.strip() for value in raw_length.split(",")}
        if len(values) != 1:
            raise MalformedHeader(f"Conflicting Content-Length values: {raw_length!r}")

        value = values.pop()
        if not (value.isascii() and value.isdigit()):
            raise MalformedHeader(f"Invalid Content-Length: {value!r}")

        length = int(value)
        if length > self.max_body_size:
            raise PayloadTooLarge(f"Body of {length} bytes exceeds {self.max_body_size}")

        return reader.read_exact(length)


def parse_request(data: bytes, client_address: Optional[tuple] = None) -> Request:
    """
    Parse a complete request held in memory.

        request = parse_request(b"GET / HTTP/1.1\\r\\nHost: x\\r\\n\\r\\n")
    """
    return RequestParser().parse(ByteStreamReader.from_chunks([data]), client_address)
