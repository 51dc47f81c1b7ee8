"""
Access logging middleware.

Writes one line per request to the ``wirehttp.access`` logger, either in
an Apache-like text format or as JSON, and tags the response with an
X-Request-ID header. Register it first so it also sees requests that
later middleware reject:

    server.use_middleware(LoggingMiddleware(log_format="json", skip_paths=["/health"]))

Configure the output like any other logger:

    logging.getLogger("wirehttp.access").addHandler(file_handler)
"""

import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from typing import Iterable, Optional

from ..http.context import Context, ContextKey
from .base import Middleware, Next


logger = logging.getLogger("wirehttp.access")

REQUEST_ID = ContextKey("request_id", str)


@dataclass
class RequestLog:
    """One access log entry."""

    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: Optional[int]
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        entry = asdict(self)
        entry["duration_ms"] = round(self.duration_ms, 2)
        return entry

    def to_text(self) -> str:
        size = "-" if self.content_length is None else self.content_length
        target = f"{self.path}?{self.query}" if self.query else self.path
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {target}" {self.status_code} {size} '
            f'{self.duration_ms:.2f}ms [{self.request_id}]'
        )


class LoggingMiddleware(Middleware):
    """
    Request logging middleware.

    Args:
        log_format: "text" or "json".
        include_request_id: Add X-Request-ID to responses. The id is also
            stored on the Context under REQUEST_ID.
        log_level: Level used for access lines.
        skip_paths: Paths that are not logged (health probes and the like).
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[Iterable[str]] = None,
    ):
        if log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {log_format!r}")
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or ())

    def __call__(self, ctx: Context, next: Next) -> None:
        request = ctx.request
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        ctx.set(REQUEST_ID, request_id)
        start_time = time.time()

        try:
            next()
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms) [{request_id}]"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        if self.include_request_id:
            ctx.response.headers["X-Request-ID"] = request_id

        if request.path in self.skip_paths:
            return

        entry = RequestLog(
            request_id=request_id,
            method=str(request.method),
            path=request.path,
            query="&".join(f"{k}={v}" for k, v in request.query.items()),
            client_ip=request.client_address[0] if request.client_address else "-",
            user_agent=request.headers.get("User-Agent", "-"),
            status_code=ctx.response.status,
            content_length=ctx.response.content_length,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())
