"""
=============================================================================
REQUEST CONTEXT
=============================================================================

One Context per request, created after routing and dropped once the
response is written. It is the only thing middleware and handlers see:

    ctx.request     the parsed Request (immutable)
    ctx.response    the Response being built (mutable)
    ctx.params      path parameters captured by the router
    ctx.set/get     typed extension store for middleware → handler data

A Context is never shared between requests or threads.

=============================================================================
TYPED EXTENSION STORE
=============================================================================

Keys are ContextKey objects, not strings, so two middleware can't clash
on a name by accident and values are type-checked on the way in:

    CURRENT_USER = ContextKey("current_user", User)

    def auth(ctx, next):
        ctx.set(CURRENT_USER, load_user(ctx))
        next()

    def profile(ctx):
        user = ctx.get(CURRENT_USER)           # ContextKeyError if missing
        user = ctx.get(CURRENT_USER, None)     # or a default

A failed lookup raises ContextKeyError (a KeyError), which the handler can
catch; it never corrupts the connection.
=============================================================================
"""

from typing import Any, Generic, Optional, TypeVar

from ..errors import ContextKeyError
from .request import Request
from .response import Body, Response, json_response
from .status_codes import HTTPStatus


T = TypeVar("T")

_MISSING = object()


class ContextKey(Generic[T]):
    """
    Identity-based key for the Context extension store.

    Args:
        name: Shown in errors and repr only; two keys with the same name
              are still different keys.
        type: Optional type values must be instances of.
    """

    __slots__ = ("name", "type")

    def __init__(self, name: str, type: Optional[type] = None):
        self.name = name
        self.type = type

    def __repr__(self) -> str:
        type_name = self.type.__name__ if self.type is not None else "Any"
        return f"ContextKey({self.name!r}, {type_name})"


class Context:
    """Per-request state passed through the middleware chain to the handler."""

    __slots__ = ("request", "response", "params", "route", "_store")

    def __init__(
        self,
        request: Request,
        params: Optional[dict[str, str]] = None,
        response: Optional[Response] = None,
        route=None,
    ):
        self.request = request
        self.response = response if response is not None else Response()
        self.params: dict[str, str] = dict(params or {})
        self.route = route
        self._store: dict[ContextKey, Any] = {}

    def __repr__(self) -> str:
        return f"<Context {self.request.method} {self.request.path} params={self.params!r}>"

    # =========================================================================
    # EXTENSION STORE
    # =========================================================================

    def set(self, key: ContextKey[T], value: T) -> None:
        if not isinstance(key, ContextKey):
            raise TypeError(f"Context keys must be ContextKey instances, got {key!r}")
        if key.type is not None and not isinstance(value, key.type):
            raise TypeError(
                f"{key.name} expects {key.type.__name__}, got {type(value).__name__}"
            )
        self._store[key] = value

    def get(self, key: ContextKey[T], default: Any = _MISSING) -> T:
        try:
            return self._store[key]
        except KeyError:
            if default is not _MISSING:
                return default
            raise ContextKeyError(key.name) from None

    def has(self, key: ContextKey) -> bool:
        return key in self._store

    def delete(self, key: ContextKey) -> None:
        self._store.pop(key, None)

    # =========================================================================
    # REQUEST ACCESSORS
    # =========================================================================

    def param(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.params.get(name, default)

    def query_value(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.request.query.get(name, default)

    def form_value(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Field of an x-www-form-urlencoded body."""
        return self.request.form.get(name, default)

    def cookie(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.request.cookies.get(name, default)

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.request.headers.get(name, default)

    # =========================================================================
    # RESPONSE HELPERS
    # =========================================================================

    def set_status(self, status: int) -> "Context":
        self.response.set_status(status)
        return self

    def set_header(self, name: str, value: str) -> "Context":
        self.response.set_header(name, value)
        return self

    def send_bytes(self, body: Body, status: int = HTTPStatus.OK, content_type: Optional[str] = None) -> Response:
        self.response.set_status(status)
        self.response.set_body(body, content_type)
        return self.response

    def send_string(self, text: str, status: int = HTTPStatus.OK) -> Response:
        """
        Set status and a UTF-8 body, leaving headers alone.

        No Content-Type is added; use text() when one is wanted.
        """
        return self.send_bytes(text.encode("utf-8"), status)

    def text(self, text: str, status: int = HTTPStatus.OK) -> Response:
        return self.send_bytes(text.encode("utf-8"), status, "text/plain; charset=utf-8")

    def html(self, markup: str, status: int = HTTPStatus.OK) -> Response:
        return self.send_bytes(markup.encode("utf-8"), status, "text/html; charset=utf-8")

    def json(self, data: Any, status: int = HTTPStatus.OK) -> Response:
        rendered = json_response(data, status)
        return self.send_bytes(rendered.body, status, rendered.headers["Content-Type"])

    def redirect(self, location: str, status: int = HTTPStatus.FOUND) -> Response:
        if not 300 <= int(status) < 400:
            raise ValueError(f"Redirect status must be 3xx, got {status}")
        self.response.set_status(status)
        self.response.set_header("Location", location)
        self.response.set_body(b"")
        return self.response

    def set_cookie(self, name: str, value: str = "", **attributes: Any):
        return self.response.set_cookie(name, value, **attributes)
