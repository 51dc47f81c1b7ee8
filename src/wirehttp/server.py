"""
=============================================================================
HTTP SERVER
=============================================================================

Ties the pieces together:

    ┌──────────────┐  Connection  ┌────────────┐  one task per connection
    │ SocketServer │ ───────────► │ ThreadPool │ ─────────────────────────┐
    └──────────────┘              └────────────┘                          │
                                                                          ▼
    ┌─────────────────────────── per-connection loop ─────────────────────┐
    │                                                                     │
    │  PARSING    RequestParser.parse(conn.reader)                        │
    │     │         └─ RequestParseError ─► 4xx, Connection: close ─► end │
    │     ▼                                                               │
    │  ROUTING    Router.match(method, path)                              │
    │     │         └─ RouteNotFound / MethodNotAllowed ─► 404 / 405 ─┐   │
    │     ▼                                                           │   │
    │  EXECUTING  MiddlewareChain(route.middleware, handler)          │   │
    │     │         └─ MiddlewareAborted ─► error_status (500)  ──────┤   │
    │     ▼                                                           ▼   │
    │  WRITING    ResponseWriter.write(conn, response)  ◄─────────────┘   │
    │     │                                                               │
    │     ├─ keep-alive ─► KEEP_ALIVE ─► back to PARSING                  │
    │     └─ otherwise  ─► CLOSED                                         │
    └─────────────────────────────────────────────────────────────────────┘

Everything that goes wrong inside the loop stays inside that connection.
The only error run() lets escape is a failure to bind the socket.

Usage:

    server = HTTPServer(ServerConfig(port=8080))

    @server.get("/hello")
    def hello(ctx):
        ctx.send_string("hello")

    server.run()
=============================================================================
"""

import logging
import socket
import threading
from typing import Any, Callable, Optional, Union

from .config import ServerConfig
from .core import Connection, ConnectionState, SocketServer, ThreadPool
from .core.thread_pool import Task
from .errors import (
    ConnectionClosed,
    HTTPError,
    MiddlewareAborted,
    RequestParseError,
    RoutingError,
)
from .events import (
    CONNECTION_CLOSED,
    CONNECTION_OPENED,
    ERROR,
    REQUEST_RECEIVED,
    RESPONSE_SENT,
    ROUTE_MATCHED,
    SERVER_STARTED,
    SERVER_STOPPED,
    Event,
    EventSink,
    LoggingSink,
)
from .handlers.static import StaticFileHandler
from .http import (
    Context,
    HTTPMethod,
    HTTPStatus,
    Request,
    RequestParser,
    Response,
    ResponseWriter,
    Route,
    RouteGroup,
    Router,
    error_response,
)
from .middleware import MiddlewareChain


logger = logging.getLogger(__name__)


class HTTPServer:
    """
    HTTP/1.1 server on raw sockets.

    Args:
        config: Server configuration. Defaults to ServerConfig().
        sink: Receives structured Events. Defaults to LoggingSink().
        router: Pre-built router, if routes are registered elsewhere.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        sink: Optional[EventSink] = None,
        router: Optional[Router] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()
        self.sink = sink if sink is not None else LoggingSink()

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(
            max_headers=self.config.max_headers,
            max_body_size=self.config.max_body_size,
        )
        self._writer = ResponseWriter(
            server_header=self.config.server_header,
            server_name=self.config.server_name,
        )

        self._router = router if router is not None else Router()
        self._global_middleware: list[Callable] = []

        self._running = False
        self._connections: set[Connection] = set()
        self._connections_lock = threading.Lock()

        if self.config.static_dir:
            self.serve_static(self.config.static_url_prefix, self.config.static_dir)

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    @property
    def router(self) -> Router:
        return self._router

    def use_middleware(self, *middleware: Callable) -> "HTTPServer":
        """
        Add server-wide middleware. It runs before group and route
        middleware on every matched route, in the order added.
        """
        if self._router.frozen:
            raise RuntimeError("Cannot add middleware after the server has started")
        for item in middleware:
            if not callable(item):
                raise TypeError(f"Middleware must be callable, got {item!r}")
        self._global_middleware.extend(middleware)
        return self

    def add_route(self, method: Union[str, HTTPMethod], pattern: str, *chain: Callable, name: Optional[str] = None) -> Route:
        """add_route(method, pattern, *middleware, handler). See Router.add_route."""
        return self._router.add_route(method, pattern, *chain, name=name)

    def group(self, prefix: str) -> RouteGroup:
        return self._router.group(prefix)

    def route(self, method: Union[str, HTTPMethod], pattern: str, *middleware: Callable, name: Optional[str] = None):
        return self._router.route(method, pattern, *middleware, name=name)

    def get(self, pattern: str, *middleware: Callable, name: Optional[str] = None):
        return self._router.get(pattern, *middleware, name=name)

    def post(self, pattern: str, *middleware: Callable, name: Optional[str] = None):
        return self._router.post(pattern, *middleware, name=name)

    def put(self, pattern: str, *middleware: Callable, name: Optional[str] = None):
        return self._router.put(pattern, *middleware, name=name)

    def patch(self, pattern: str, *middleware: Callable, name: Optional[str] = None):
        return self._router.patch(pattern, *middleware, name=name)

    def delete(self, pattern: str, *middleware: Callable, name: Optional[str] = None):
        return self._router.delete(pattern, *middleware, name=name)

    def serve_static(self, url_prefix: str, root_dir: str, *middleware: Callable, **options: Any) -> StaticFileHandler:
        """
        Serve files from root_dir under url_prefix.

            server.serve_static("/assets", "./public")
            # GET /assets/css/app.css -> ./public/css/app.css
        """
        handler = StaticFileHandler(root_dir, **options)
        pattern = url_prefix.rstrip("/") + f"/*{handler.param}"
        self._router.add_route("GET", pattern, *middleware, handler)
        return handler

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def address(self) -> tuple[str, int]:
        """Bound (host, port); the real port once running with port=0."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    def run(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """
        Start the server and block until shutdown() or SIGINT/SIGTERM.

        Raises:
            OSError: The listening socket could not be bound.
        """
        if host:
            self.config.host = host
        if port is not None:
            self.config.port = port
        self.config.validate()

        self._setup_logging()
        self._router.freeze(self._global_middleware)
        self._thread_pool.start()
        self._running = True

        self._emit(SERVER_STARTED, host=self.config.host, port=self.config.port, routes=len(self._router))

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server accepts connections. False on timeout."""
        return self._socket_server.wait_until_ready(timeout)

    def shutdown(self) -> None:
        """Ask a running server to stop. Safe from any thread."""
        self._socket_server.shutdown()

    def _setup_logging(self) -> None:
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("wirehttp").setLevel(level)

    def _shutdown(self) -> None:
        logger.info("Shutting down server...")
        self._running = False

        # Unblock workers waiting in recv(); they see end of stream and exit
        with self._connections_lock:
            active = list(self._connections)
        for conn in active:
            try:
                conn.socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass

        self._thread_pool.shutdown(wait=True, timeout=5.0, on_discard=self._discard_task)
        self._emit(SERVER_STOPPED)
        logger.info("Server stopped")

    @staticmethod
    def _discard_task(task: Task) -> None:
        """Close connections that were accepted but never reached a worker."""
        for arg in task.args:
            if isinstance(arg, Connection):
                logger.debug(f"[{arg.id}] Closing queued connection on shutdown")
                arg.close()

    # =========================================================================
    # EVENTS
    # =========================================================================

    def _emit(self, name: str, **fields: Any) -> None:
        try:
            self.sink(Event(name, fields))
        except Exception:
            logger.exception(f"Event sink failed on {name}")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection) -> None:
        """Called by the accept loop: hand the connection to a worker."""
        if self._thread_pool.submit(self._process_connection, args=(conn,)):
            return

        logger.warning(f"[{conn.id}] Thread pool full, rejecting connection")
        self._write(conn, None, error_response(HTTPStatus.SERVICE_UNAVAILABLE), keep_alive=False)
        conn.close()

    def _process_connection(self, conn: Connection) -> None:
        """Keep-alive loop for one connection (runs in a worker thread)."""
        try:
            with conn:
                with self._connections_lock:
                    self._connections.add(conn)
                self._emit(CONNECTION_OPENED, connection=conn.id, client=conn.client_ip)
                while self._running and self._serve_one(conn):
                    conn.state = ConnectionState.KEEP_ALIVE
        except Exception as e:
            logger.exception(f"[{conn.id}] Connection error: {e}")
            self._emit(ERROR, connection=conn.id, stage="connection", error=repr(e))
        finally:
            with self._connections_lock:
                self._connections.discard(conn)
            self._emit(CONNECTION_CLOSED, connection=conn.id, requests=conn.requests_handled)

    def _serve_one(self, conn: Connection) -> bool:
        """
        Handle one request/response exchange.

        Returns:
            True if the connection should wait for another request.
        """
        conn.begin_request()
        try:
            request = self._parser.parse(conn.reader, conn.address)
        except ConnectionClosed:
            return False
        except TimeoutError:
            if conn.reader.has_pending:
                # Client started a request and stalled
                self._write(conn, None, error_response(HTTPStatus.REQUEST_TIMEOUT), keep_alive=False)
            return False
        except RequestParseError as e:
            logger.info(f"[{conn.id}] Bad request: {e.message}")
            self._emit(ERROR, connection=conn.id, stage="parse", status=e.status_code, error=e.message)
            self._write(conn, None, self._error_response(e), keep_alive=False)
            return False

        self._emit(
            REQUEST_RECEIVED,
            connection=conn.id,
            method=str(request.method),
            path=request.path,
            version=request.version,
        )

        response = self._dispatch(conn, request)
        keep_alive = self._should_keep_alive(request, response)
        return self._write(conn, request, response, keep_alive) and keep_alive

    def _dispatch(self, conn: Connection, request: Request) -> Response:
        conn.state = ConnectionState.ROUTING
        try:
            match = self._router.match(request.method, request.path_segments)
        except RoutingError as e:
            self._emit(ERROR, connection=conn.id, stage="routing", status=e.status_code, error=e.message)
            return self._error_response(e)

        self._emit(
            ROUTE_MATCHED,
            connection=conn.id,
            method=match.route.method,
            pattern=match.route.pattern,
            params=dict(match.params),
        )

        conn.state = ConnectionState.EXECUTING
        ctx = Context(request, match.params, route=match.route)
        chain = MiddlewareChain(match.route.middleware, match.route.handler)

        try:
            return chain.execute(ctx)
        except MiddlewareAborted as e:
            if e.cause is not None:
                logger.error(f"[{conn.id}] {request.method} {request.path} failed: {e.message}", exc_info=e.cause)
            ctx.response.close()
            self._emit(ERROR, connection=conn.id, stage="handler", status=self._abort_status(e), error=e.message)
            return self._error_response(e)
        except HTTPError as e:
            ctx.response.close()
            self._emit(ERROR, connection=conn.id, stage="handler", status=e.status_code, error=e.message)
            return self._error_response(e)

    def _abort_status(self, error: MiddlewareAborted) -> int:
        return error.status_code if error.explicit_status else self.config.error_status

    def _error_response(self, error: HTTPError) -> Response:
        """The single place where exceptions become responses."""
        status = error.status_code
        if isinstance(error, MiddlewareAborted):
            status = self._abort_status(error)
        return error_response(status, error.headers)

    def _should_keep_alive(self, request: Request, response: Response) -> bool:
        return (
            self._running
            and self.config.keep_alive
            and request.is_keep_alive
            and response.headers.get("Connection", "").lower() != "close"
            and not ResponseWriter.requires_close(response)
        )

    def _write(self, conn: Connection, request: Optional[Request], response: Response, keep_alive: bool) -> bool:
        """
        Send a response, setting the Connection header.

        HTTP/1.1 is persistent by default, so "Connection: keep-alive" is
        only written for HTTP/1.0 clients.
        """
        if not keep_alive:
            response.headers["Connection"] = "close"
        elif request is not None and request.version == "HTTP/1.0":
            response.headers["Connection"] = "keep-alive"

        head_only = request is not None and request.method == HTTPMethod.HEAD

        try:
            sent = self._writer.write(conn, response, head_only=head_only)
        except ValueError as e:
            # Raised by serialize_head before any byte is sent
            logger.error(f"[{conn.id}] Invalid response: {e}")
            fallback = error_response(HTTPStatus.INTERNAL_SERVER_ERROR, {"Connection": "close"})
            self._writer.write(conn, fallback)
            return False

        if sent:
            conn.requests_handled += 1
            self._emit(
                RESPONSE_SENT,
                connection=conn.id,
                status=response.status,
                length=response.content_length,
                keep_alive=keep_alive,
            )
        return sent
