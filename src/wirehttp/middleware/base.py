"""
=============================================================================
MIDDLEWARE CHAIN
=============================================================================

A route's chain is an ordered list of middleware followed by one terminal
handler. Every link sees the same Context; execution is strictly
sequential.

    ┌────────────┐ next() ┌────────────┐ next() ┌────────────┐
    │ middleware │ ─────► │ middleware │ ─────► │  handler   │
    │  (global)  │        │  (route)   │        │ (terminal) │
    └────────────┘        └────────────┘        └────────────┘
          ▲                      │
          └── code after next() runs once the inner links return

A middleware is any callable taking (ctx, next):

    def require_auth(ctx, next):
        if "Authorization" not in ctx.request.headers:
            ctx.send_string("Unauthorized", status=401)
            return                      # short-circuit: handler never runs
        next()                          # continue the chain

It can:
    (a) mutate the Context and call next() to continue,
    (b) finalize ctx.response and not call next() (short-circuit),
    (c) raise. HTTPError subclasses keep their status (a static file
        handler's ForbiddenPath stays a 403); anything else aborts the
        chain as MiddlewareAborted, answered with the configured error
        status (500 by default).

The terminal handler takes only the Context. It may finalize
ctx.response in place or return a Response, which replaces it.
=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional, Sequence

from ..errors import HTTPError, MiddlewareAborted
from ..http.context import Context
from ..http.response import Response


logger = logging.getLogger(__name__)

Next = Callable[[], None]
MiddlewareFunc = Callable[[Context, Next], None]
Handler = Callable[[Context], Optional[Response]]


class Middleware(ABC):
    """
    Optional base class for class-based middleware.

    Plain functions work just as well; subclass this when the middleware
    carries configuration.
    """

    @abstractmethod
    def __call__(self, ctx: Context, next: Next) -> None:
        """Process ctx, calling next() to continue the chain."""

    @property
    def name(self) -> str:
        return self.__class__.__name__


def _describe(link: Callable) -> str:
    return getattr(link, "name", None) or getattr(link, "__name__", None) or type(link).__name__


class MiddlewareChain:
    """
    Runs middleware then the handler over one Context.

        chain = MiddlewareChain([log_requests, require_auth], get_user)
        response = chain.execute(ctx)
    """

    def __init__(self, middleware: Sequence[MiddlewareFunc], handler: Handler):
        self.middleware = tuple(middleware)
        self.handler = handler

    def __len__(self) -> int:
        return len(self.middleware) + 1

    def execute(self, ctx: Context) -> Response:
        """
        Run the chain and return the final ctx.response.

        Raises:
            HTTPError: Raised by a link; propagates unchanged.
            MiddlewareAborted: Any other exception raised by a link.
        """
        try:
            self._run(ctx, 0)
        except HTTPError:
            raise
        except Exception as e:
            raise MiddlewareAborted(f"{type(e).__name__}: {e}", cause=e) from e
        return ctx.response

    def _run(self, ctx: Context, index: int) -> None:
        if index == len(self.middleware):
            result = self.handler(ctx)
            if isinstance(result, Response) and result is not ctx.response:
                ctx.response.close()
                ctx.response = result
            return

        link = self.middleware[index]
        called = False

        def next() -> None:
            nonlocal called
            if called:
                raise RuntimeError(f"{_describe(link)} called next() more than once")
            called = True
            self._run(ctx, index + 1)

        link(ctx, next)

        if not called:
            logger.debug(f"Chain short-circuited by {_describe(link)}")
