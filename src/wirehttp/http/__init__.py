"""
=============================================================================
HTTP - Protocol Layer
=============================================================================

    request.py       RequestParser: bytes on a stream -> immutable Request
    headers.py       case-insensitive, order-preserving header map
    cookies.py       Cookie header parsing, Set-Cookie rendering
    response.py      mutable Response and the ResponseWriter that puts it
                     on the wire
    router.py        segment-based routes, groups and matching
    context.py       per-request Context with a typed extension store
    status_codes.py  HTTPStatus and reason phrases
    mime_types.py    file extension -> Content-Type
=============================================================================
"""

from .context import Context, ContextKey
from .cookies import Cookie, parse_cookie_header
from .headers import Headers
from .mime_types import get_content_type, get_mime_type
from .request import HTTPMethod, Request, RequestParser, parse_request, split_path
from .response import (
    Response,
    ResponseWriter,
    error_response,
    json_response,
    redirect_response,
    text_response,
)
from .router import Route, RouteGroup, RouteMatch, Router
from .status_codes import HTTPStatus, reason_phrase

__all__ = [
    "Context",
    "ContextKey",
    "Cookie",
    "Headers",
    "HTTPMethod",
    "HTTPStatus",
    "Request",
    "RequestParser",
    "Response",
    "ResponseWriter",
    "Route",
    "RouteGroup",
    "RouteMatch",
    "Router",
    "error_response",
    "get_content_type",
    "get_mime_type",
    "json_response",
    "parse_cookie_header",
    "parse_request",
    "reason_phrase",
    "redirect_response",
    "split_path",
    "text_response",
]
