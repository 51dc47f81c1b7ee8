"""
Middleware: code that runs around a route's handler.

    def timing(ctx, next):
        start = time.time()
        next()
        ctx.response.headers["X-Elapsed"] = f"{time.time() - start:.3f}"

    server.use_middleware(timing)                # every route
    api = server.group("/api")
    api.use_middleware(require_auth)            # routes under /api
    server.get("/admin", audit)(admin_page)     # a single route

Order: server-wide, then outer group to inner group, then per-route.
"""

from .base import Handler, Middleware, MiddlewareChain, MiddlewareFunc, Next
from .logging import REQUEST_ID, LoggingMiddleware, RequestLog

__all__ = [
    "Handler",
    "LoggingMiddleware",
    "Middleware",
    "MiddlewareChain",
    "MiddlewareFunc",
    "Next",
    "REQUEST_ID",
    "RequestLog",
]
