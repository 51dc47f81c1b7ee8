"""
=============================================================================
WIREHTTP - HTTP/1.1 Server on Raw Sockets
=============================================================================

A small HTTP/1.1 server engine: TCP accept loop, worker pool, streaming
request parser, segment router with groups, per-route middleware chains,
a typed request Context and a static file handler. No dependencies
outside the standard library.

    from wirehttp import HTTPServer, ServerConfig

    server = HTTPServer(ServerConfig(port=8080))

    @server.get("/users/:id")
    def get_user(ctx):
        ctx.json({"id": ctx.param("id")})

    server.run()

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    wirehttp/
    ├── __main__.py          # CLI (python -m wirehttp)
    ├── server.py            # HTTPServer: the connection pipeline
    ├── config.py            # ServerConfig
    ├── errors.py            # exception hierarchy
    ├── events.py            # structured events and sinks
    ├── core/                # sockets, connections, stream reader, pool
    ├── http/                # request, response, router, context
    ├── middleware/          # chain execution, access logging
    └── handlers/            # static files
=============================================================================
"""

__version__ = "1.0.0"
__author__ = "wirehttp contributors"

from .config import ServerConfig
from .errors import (
    ConnectionClosed,
    ContextKeyError,
    FileNotFound,
    FileUnreadable,
    ForbiddenPath,
    HTTPError,
    IncompleteBody,
    MalformedHeader,
    MalformedRequestLine,
    MethodNotAllowed,
    MiddlewareAborted,
    PayloadTooLarge,
    RequestParseError,
    RouteConflict,
    RouteNotFound,
    RoutingError,
    StaticFileError,
    UnsupportedEncoding,
)
from .events import Event, EventRecorder, LoggingSink, NullSink
from .http import (
    Context,
    ContextKey,
    HTTPMethod,
    HTTPStatus,
    Request,
    Response,
    Router,
)
from .middleware import LoggingMiddleware, Middleware
from .handlers import StaticFileHandler
from .server import HTTPServer

__all__ = [
    # Server
    "HTTPServer",
    "ServerConfig",
    # HTTP
    "Context",
    "ContextKey",
    "HTTPMethod",
    "HTTPStatus",
    "Request",
    "Response",
    "Router",
    # Middleware and handlers
    "LoggingMiddleware",
    "Middleware",
    "StaticFileHandler",
    # Events
    "Event",
    "EventRecorder",
    "LoggingSink",
    "NullSink",
    # Errors
    "ConnectionClosed",
    "ContextKeyError",
    "FileNotFound",
    "FileUnreadable",
    "ForbiddenPath",
    "HTTPError",
    "IncompleteBody",
    "MalformedHeader",
    "MalformedRequestLine",
    "MethodNotAllowed",
    "MiddlewareAborted",
    "PayloadTooLarge",
    "RequestParseError",
    "RouteConflict",
    "RouteNotFound",
    "RoutingError",
    "StaticFileError",
    "UnsupportedEncoding",
]
