"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure the engine knows how to recover from is an exception class
carrying the HTTP status it maps to. Errors are raised where they are
detected (parser, router, middleware chain, static handler) and turned
into a response in exactly one place: HTTPServer._error_response().

    HTTPError (status_code, message, headers)
    ├── RequestParseError ............... 400  parser level: always closes
    │   ├── MalformedRequestLine ........ 400
    │   ├── MalformedHeader ............. 400
    │   ├── IncompleteBody .............. 400
    │   ├── UnsupportedEncoding ......... 411
    │   ├── PayloadTooLarge ............. 413
    │   └── HeaderTooLarge .............. 431
    │       └── LineTooLong ............. 431
    ├── RoutingError
    │   ├── RouteNotFound ............... 404
    │   └── MethodNotAllowed ............ 405  (+ Allow header)
    ├── MiddlewareAborted ............... 500  (configurable)
    └── StaticFileError
        ├── ForbiddenPath ............... 403
        ├── FileNotFound ................ 404
        └── FileUnreadable .............. 500

Outside the HTTP hierarchy:

    ConnectionClosed       peer went away, nothing left to answer
    RouteConflict          ValueError raised while registering routes
    ContextKeyError        KeyError raised by the Context extension store

Only a failure to bind the listening socket is fatal to the process.
Everything above is isolated to the connection that raised it.
=============================================================================
"""

from typing import Iterable, Optional


class HTTPError(Exception):
    """
    Base class for errors that map onto an HTTP response.

    Attributes:
        status_code: Status to answer with.
        message: Human readable reason (logged, never sent verbatim).
        headers: Extra response headers, e.g. Allow for a 405.
    """

    status_code: int = 500

    def __init__(
        self,
        message: str = "",
        status_code: Optional[int] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.headers = dict(headers or {})


# =============================================================================
# PARSER LEVEL
# =============================================================================


class RequestParseError(HTTPError):
    """The bytes on the wire are not an acceptable HTTP/1.x request."""

    status_code = 400


class MalformedRequestLine(RequestParseError):
    """Request line is not METHOD SP TARGET SP VERSION, or uses an unknown method."""


class MalformedHeader(RequestParseError):
    """A header line has no colon, or a framing header has a bad value."""


class IncompleteBody(RequestParseError):
    """Peer closed the connection before Content-Length bytes arrived."""

    def __init__(self, expected: int, received: int):
        super().__init__(f"Expected {expected} body bytes, received {received}")
        self.expected = expected
        self.received = received


class UnsupportedEncoding(RequestParseError):
    """Transfer-Encoding other than identity (chunked is not supported)."""

    status_code = 411


class PayloadTooLarge(RequestParseError):
    status_code = 413


class HeaderTooLarge(RequestParseError):
    status_code = 431


class LineTooLong(HeaderTooLarge):
    """A single line exceeded the reader's maximum line size."""


class ConnectionClosed(Exception):
    """The peer closed (or reset) the connection at a message boundary."""


# =============================================================================
# ROUTING LEVEL
# =============================================================================


class RoutingError(HTTPError):
    pass


class RouteNotFound(RoutingError):
    status_code = 404


class MethodNotAllowed(RoutingError):
    """
    The path matched at least one route, but none for this method.

    Carries the allowed methods so the response can include an Allow
    header as RFC 7231 requires.
    """

    status_code = 405

    def __init__(self, method: str, path: str, allowed: Iterable[str]):
        self.allowed = sorted(set(allowed))
        super().__init__(
            f"{method} not allowed for {path}",
            headers={"Allow": ", ".join(self.allowed)},
        )


class RouteConflict(ValueError):
    """A route with the same method and an indistinguishable pattern exists."""


# =============================================================================
# HANDLER / MIDDLEWARE LEVEL
# =============================================================================


class MiddlewareAborted(HTTPError):
    """
    A middleware or handler failed.

    Raised directly by middleware that wants to abort with a specific
    status, or created by MiddlewareChain when a link raises something
    unexpected (the original exception is kept in ``cause``). When no
    status is given the server substitutes ``config.error_status``.
    """

    def __init__(
        self,
        message: str = "Middleware aborted",
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, status_code=status_code)
        self.explicit_status = status_code is not None
        self.cause = cause


class ContextKeyError(KeyError):
    """Lookup of a key that is not present in the Context extension store."""


# =============================================================================
# STATIC FILE LEVEL
# =============================================================================


class StaticFileError(HTTPError):
    pass


class ForbiddenPath(StaticFileError):
    status_code = 403


class FileNotFound(StaticFileError):
    status_code = 404


class FileUnreadable(StaticFileError):
    status_code = 500
