"""
=============================================================================
URL ROUTER
=============================================================================

Maps (method, path) to a Route and the parameters captured from the path.

=============================================================================
PATTERN SYNTAX
=============================================================================

    /users                 literal segments only
    /users/:id             ":name" captures exactly one segment as text
    /static/*path          "*name" (or bare "*", named "path") captures the
                           rest of the path, slashes included. Only legal
                           as the last segment. May capture "".

    Pattern                 Path                  Params
    ─────────────────────   ───────────────────   ─────────────────────────
    /users/:id              /users/42             {"id": "42"}
    /users/:id/posts/:pid   /users/1/posts/9      {"id": "1", "pid": "9"}
    /static/*path           /static/css/app.css   {"path": "css/app.css"}
    /static/*path           /static               {"path": ""}

Trailing slashes and empty segments are ignored on both sides, so
"/users/" and "/users" are the same route.

=============================================================================
MATCHING
=============================================================================

Routes are tried in registration order; the first one whose segments
agree wins. Groups share one table, so that order is global.

    no route matches the path ............... RouteNotFound     (404)
    path matches, but only other methods .... MethodNotAllowed  (405)

A HEAD request that matches no HEAD route falls back to the GET route.

=============================================================================
REGISTRATION RULES
=============================================================================

Same method and indistinguishable pattern (same shape, same literals,
parameter names aside) raises RouteConflict:

    GET /users/:id   then   GET /users/:user_id     → RouteConflict

Overlapping patterns are allowed but logged as a warning, since
first-match-wins decides between them:

    GET /users/all   then   GET /users/:id          → warning (overlap)
    GET /users/:id   then   GET /users/all          → warning (unreachable)

The table is frozen by HTTPServer.run() before the first connection is
accepted; freeze() also resolves each route's full middleware chain.
After that the router is read-only and shared across worker threads
without locking.
=============================================================================
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Sequence, Union
from urllib.parse import quote

from ..errors import MethodNotAllowed, RouteConflict, RouteNotFound
from .request import HTTPMethod, split_path

if TYPE_CHECKING:
    from .context import Context
    from .response import Response


logger = logging.getLogger(__name__)

Handler = Callable[["Context"], Optional["Response"]]
Middleware = Callable[["Context", Callable[[], None]], None]

DEFAULT_WILDCARD_NAME = "path"


class SegmentKind(Enum):
    LITERAL = "literal"
    PARAM = "param"
    WILDCARD = "wildcard"


@dataclass(frozen=True)
class Segment:
    kind: SegmentKind
    value: str  # Literal text, or the parameter name

    def __str__(self) -> str:
        if self.kind is SegmentKind.PARAM:
            return f":{self.value}"
        if self.kind is SegmentKind.WILDCARD:
            return f"*{self.value}"
        return self.value


def parse_pattern(pattern: str) -> tuple[Segment, ...]:
    """
    Split a route pattern into typed segments.

    Raises:
        ValueError: Pattern does not start with "/", a wildcard is not the
                    last segment, or a parameter name is empty or repeated.
    """
    if not pattern.startswith("/"):
        raise ValueError(f"Route pattern must start with '/': {pattern!r}")

    parts = split_path(pattern)
    segments: list[Segment] = []
    names: set[str] = set()

    for index, part in enumerate(parts):
        if part.startswith(":"):
            kind, value = SegmentKind.PARAM, part[1:]
            if not value:
                raise ValueError(f"Empty parameter name in {pattern!r}")
        elif part.startswith("*"):
            if index != len(parts) - 1:
                raise ValueError(f"Wildcard must be the last segment: {pattern!r}")
            kind, value = SegmentKind.WILDCARD, part[1:] or DEFAULT_WILDCARD_NAME
        else:
            segments.append(Segment(SegmentKind.LITERAL, part))
            continue

        if value in names:
            raise ValueError(f"Duplicate parameter {value!r} in {pattern!r}")
        names.add(value)
        segments.append(Segment(kind, value))

    return tuple(segments)


@dataclass(frozen=True)
class Route:
    """
    One registered route. Immutable.

    ``middleware`` holds only the route's own middleware until the router
    is frozen, then the full chain (server, groups, route) in run order.
    """

    method: str
    pattern: str
    segments: tuple[Segment, ...]
    handler: Handler
    middleware: tuple = ()
    name: Optional[str] = None
    group: Optional["RouteGroup"] = field(default=None, compare=False, repr=False)

    @property
    def shape(self) -> tuple:
        """Pattern with parameter names erased; equal shapes match the same paths."""
        return tuple((s.kind, s.value if s.kind is SegmentKind.LITERAL else None) for s in self.segments)

    def match(self, path_segments: Sequence[str]) -> Optional[dict[str, str]]:
        """Captured params if this route's pattern matches the path, else None."""
        params: dict[str, str] = {}
        for index, segment in enumerate(self.segments):
            if segment.kind is SegmentKind.WILDCARD:
                params[segment.value] = "/".join(path_segments[index:])
                return params
            if index >= len(path_segments):
                return None
            if segment.kind is SegmentKind.LITERAL:
                if path_segments[index] != segment.value:
                    return None
            else:
                params[segment.value] = path_segments[index]

        if len(path_segments) != len(self.segments):
            return None
        return params

    def covers(self, other: "Route") -> bool:
        """True if every path ``other`` matches is also matched by this route."""
        for index, mine in enumerate(self.segments):
            if mine.kind is SegmentKind.WILDCARD:
                return True
            if index >= len(other.segments):
                return False
            theirs = other.segments[index]
            if theirs.kind is SegmentKind.WILDCARD:
                return False
            if mine.kind is SegmentKind.LITERAL and (
                theirs.kind is not SegmentKind.LITERAL or theirs.value != mine.value
            ):
                return False
        return len(self.segments) == len(other.segments)

    def overlaps(self, other: "Route") -> bool:
        """True if at least one path is matched by both routes."""
        for index in range(max(len(self.segments), len(other.segments))):
            mine = self.segments[index] if index < len(self.segments) else None
            theirs = other.segments[index] if index < len(other.segments) else None
            if any(s is not None and s.kind is SegmentKind.WILDCARD for s in (mine, theirs)):
                return True
            if mine is None or theirs is None:
                return False
            if (
                mine.kind is SegmentKind.LITERAL
                and theirs.kind is SegmentKind.LITERAL
                and mine.value != theirs.value
            ):
                return False
        return True


@dataclass(frozen=True)
class RouteMatch:
    route: Route
    params: dict[str, str]


def _join_prefix(prefix: str, pattern: str) -> str:
    prefix = prefix.rstrip("/")
    if not pattern.startswith("/"):
        raise ValueError(f"Route pattern must start with '/': {pattern!r}")
    joined = prefix + pattern
    return joined if joined == "/" else joined.rstrip("/") or "/"


class RouteGroup:
    """
    A set of routes sharing a path prefix and middleware.

    Groups nest; a route's chain runs the outermost group's middleware
    first. Groups write into their router's single table.

        api = router.group("/api")
        api.use_middleware(require_token)

        @api.get("/users/:id")
        def get_user(ctx):
            ...
    """

    def __init__(self, router: "Router", prefix: str = "", parent: Optional["RouteGroup"] = None):
        self._router = router
        self.prefix = prefix.rstrip("/")
        self.parent = parent
        self._middleware: list[Middleware] = []

    @property
    def middleware(self) -> tuple:
        return tuple(self._middleware)

    def middleware_chain(self) -> tuple:
        """This group's middleware preceded by every enclosing group's."""
        inherited = self.parent.middleware_chain() if self.parent is not None else ()
        return inherited + self.middleware

    def use_middleware(self, *middleware: Middleware) -> "RouteGroup":
        """Add middleware that runs for every route in this group."""
        self._router._check_not_frozen()
        for item in middleware:
            if not callable(item):
                raise TypeError(f"Middleware must be callable, got {item!r}")
        self._middleware.extend(middleware)
        return self

    def group(self, prefix: str) -> "RouteGroup":
        return RouteGroup(self._router, _join_prefix(self.prefix, prefix).rstrip("/"), parent=self)

    def add_route(self, method: Union[str, HTTPMethod], pattern: str, *chain: Callable, name: Optional[str] = None) -> Route:
        """
        Register a route.

            router.add_route("GET", "/users/:id", auth, audit, get_user)

        Args:
            method: HTTP method.
            pattern: Path pattern, relative to this group's prefix.
            *chain: Route middleware followed by the handler (last).
            name: Name for url_for().
        """
        if not chain:
            raise TypeError("add_route() requires a handler")
        *middleware, handler = chain
        return self._router._register(
            method, _join_prefix(self.prefix, pattern), tuple(middleware), handler, name, self
        )

    def route(self, method: Union[str, HTTPMethod], pattern: str, *middleware: Middleware, name: Optional[str] = None):
        """Decorator form of add_route()."""

        def decorator(handler: Handler) -> Handler:
            self.add_route(method, pattern, *middleware, handler, name=name)
            return handler

        return decorator

    def get(self, pattern: str, *middleware: Middleware, name: Optional[str] = None):
        return self.route("GET", pattern, *middleware, name=name)

    def post(self, pattern: str, *middleware: Middleware, name: Optional[str] = None):
        return self.route("POST", pattern, *middleware, name=name)

    def put(self, pattern: str, *middleware: Middleware, name: Optional[str] = None):
        return self.route("PUT", pattern, *middleware, name=name)

    def patch(self, pattern: str, *middleware: Middleware, name: Optional[str] = None):
        return self.route("PATCH", pattern, *middleware, name=name)

    def delete(self, pattern: str, *middleware: Middleware, name: Optional[str] = None):
        return self.route("DELETE", pattern, *middleware, name=name)

    def head(self, pattern: str, *middleware: Middleware, name: Optional[str] = None):
        return self.route("HEAD", pattern, *middleware, name=name)

    def options(self, pattern: str, *middleware: Middleware, name: Optional[str] = None):
        return self.route("OPTIONS", pattern, *middleware, name=name)


class Router(RouteGroup):
    """
    The route table. Also the root group (empty prefix).

        router = Router()

        @router.get("/users/:id")
        def get_user(ctx):
            ctx.send_string(f"user {ctx.params['id']}")

        router.freeze()
        match = router.match("GET", "/users/42")   # params == {"id": "42"}
    """

    def __init__(self):
        super().__init__(self)
        self._routes: list[Route] = []
        self._named_routes: dict[str, Route] = {}
        self._frozen = False

    @property
    def routes(self) -> tuple[Route, ...]:
        return tuple(self._routes)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __len__(self) -> int:
        return len(self._routes)

    def _check_not_frozen(self) -> None:
        if self._frozen:
            raise RuntimeError("Router is frozen; register routes before the server starts")

    def _register(
        self,
        method: Union[str, HTTPMethod],
        pattern: str,
        middleware: tuple,
        handler: Handler,
        name: Optional[str],
        group: RouteGroup,
    ) -> Route:
        self._check_not_frozen()

        try:
            method = HTTPMethod(str(method).upper()).value
        except ValueError:
            raise ValueError(f"Unknown HTTP method: {method!r}") from None

        if not callable(handler):
            raise TypeError(f"Handler must be callable, got {handler!r}")
        for item in middleware:
            if not callable(item):
                raise TypeError(f"Middleware must be callable, got {item!r}")
        if name is not None and name in self._named_routes:
            raise RouteConflict(f"Route name already registered: {name!r}")

        route = Route(
            method=method,
            pattern=pattern,
            segments=parse_pattern(pattern),
            handler=handler,
            middleware=middleware,
            name=name,
            group=group,
        )
        self._check_conflicts(route)

        self._routes.append(route)
        if name is not None:
            self._named_routes[name] = route
        logger.debug(f"Registered route {method} {pattern}")
        return route

    def _check_conflicts(self, new: Route) -> None:
        for existing in self._routes:
            if existing.method != new.method:
                continue
            if existing.shape == new.shape:
                raise RouteConflict(
                    f"{new.method} {new.pattern} conflicts with {existing.method} {existing.pattern}"
                )
            if existing.covers(new):
                logger.warning(
                    f"Route {new.method} {new.pattern} is unreachable: "
                    f"{existing.pattern} was registered first and matches every path it does"
                )
            elif existing.overlaps(new):
                logger.warning(
                    f"Route {new.method} {new.pattern} overlaps {existing.pattern}; "
                    f"the earlier registration wins where both match"
                )

    def freeze(self, global_middleware: Iterable[Middleware] = ()) -> None:
        """
        Resolve every route's middleware chain and make the table read-only.

        Chain order: global (server-wide) middleware, then each enclosing
        group from the root down, then the route's own middleware.
        Calling freeze() again is a no-op.
        """
        if self._frozen:
            return

        global_middleware = tuple(global_middleware)
        resolved = []
        for route in self._routes:
            group_chain = route.group.middleware_chain() if route.group is not None else ()
            resolved.append(replace(route, middleware=global_middleware + group_chain + route.middleware))

        self._routes = resolved
        self._named_routes = {route.name: route for route in resolved if route.name is not None}
        self._frozen = True
        logger.debug(f"Router frozen with {len(resolved)} routes")

    def match(self, method: Union[str, HTTPMethod], path: Union[str, Sequence[str]]) -> RouteMatch:
        """
        Resolve a request to a route.

        Args:
            method: Request method.
            path: Decoded path string, or already-split path segments.

        Raises:
            RouteNotFound: No route matches the path.
            MethodNotAllowed: Routes match the path, none for this method.
        """
        segments = split_path(path) if isinstance(path, str) else tuple(path)
        method = str(method).upper()

        allowed: set[str] = set()
        head_fallback: Optional[RouteMatch] = None

        for route in self._routes:
            params = route.match(segments)
            if params is None:
                continue
            if route.method == method:
                return RouteMatch(route, params)
            if method == "HEAD" and route.method == "GET" and head_fallback is None:
                head_fallback = RouteMatch(route, params)
            allowed.add(route.method)

        if head_fallback is not None:
            return head_fallback

        display_path = "/" + "/".join(segments)
        if allowed:
            if "GET" in allowed:
                allowed.add("HEAD")
            raise MethodNotAllowed(method, display_path, allowed)
        raise RouteNotFound(f"No route matches {display_path}")

    def allowed_methods(self, path: Union[str, Sequence[str]]) -> list[str]:
        segments = split_path(path) if isinstance(path, str) else tuple(path)
        return sorted({route.method for route in self._routes if route.match(segments) is not None})

    def url_for(self, name: str, **params: Any) -> str:
        """
        Build the path of a named route.

            router.add_route("GET", "/users/:id", get_user, name="user")
            router.url_for("user", id=42)   # '/users/42'

        Raises:
            KeyError: Unknown route name or missing parameter.
        """
        route = self._named_routes[name]
        parts = []
        for segment in route.segments:
            if segment.kind is SegmentKind.LITERAL:
                parts.append(segment.value)
            elif segment.kind is SegmentKind.PARAM:
                parts.append(quote(str(params[segment.value]), safe=""))
            else:
                value = str(params.get(segment.value, ""))
                if value:
                    parts.append(quote(value.strip("/"), safe="/"))
        return "/" + "/".join(parts)
