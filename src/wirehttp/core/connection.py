"""
=============================================================================
CONNECTION: ONE ACCEPTED CLIENT SOCKET
=============================================================================

A Connection wraps the socket returned by accept() with the per-connection
state the server needs while it runs the request pipeline:

1. A ByteStreamReader, so bytes left over from one request feed the next.
2. Timeouts. The first request gets the full read timeout, while waiting
   for a follow-up request on a kept-alive socket uses keep_alive_timeout.
3. The lifecycle state, for logging and for the cancellation check done
   before every write.
4. A graceful close (FIN, drain, close) that is safe to call twice.

=============================================================================
CONNECTION STATES
=============================================================================

    NEW ──► PARSING ──► ROUTING ──► EXECUTING ──► WRITING ──┐
               ▲           │                        ▲       │
               │           └── 404 / 405 ───────────┘       │
               │                                            ▼
               └────────────────── KEEP_ALIVE ◄────── keep-alive?
                                                            │ no
    PARSING ── parse error ──► WRITING (4xx) ──┐            ▼
                                               └────► CLOSING ──► CLOSED

=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from .stream import ByteStreamReader


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Where a connection is in the request pipeline."""
    NEW = "new"                # Accepted, nothing read yet
    PARSING = "parsing"        # Reading request line, headers, body
    ROUTING = "routing"        # Matching (method, path) against the router
    EXECUTING = "executing"    # Middleware chain and handler running
    WRITING = "writing"        # Sending the response
    KEEP_ALIVE = "keep_alive"  # Response sent, waiting for the next request
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(eq=False)
class Connection:
    """
    Represents a client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier used in logs and events.
        state: Current ConnectionState.
        requests_handled: Responses fully written on this connection.
        reader: Buffered reader over the socket.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_line_size: int = 8192

    reader: ByteStreamReader = field(init=False, repr=False)
    _idle_wait: bool = field(default=False, init=False, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)
        self.reader = ByteStreamReader(
            self._recv,
            buffer_size=self.buffer_size,
            max_line_size=self.max_line_size,
        )

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self.created_at

    @property
    def idle_time(self) -> float:
        return time.time() - self.last_activity

    @property
    def closed(self) -> bool:
        return self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED)

    # =========================================================================
    # READING
    # =========================================================================

    def begin_request(self) -> None:
        """
        Enter PARSING and arm the right read timeout.

        A fresh connection waits up to ``timeout`` for its first request.
        A kept-alive connection waits only ``keep_alive_timeout`` for the
        first byte of its next request, so idle clients release their worker
        quickly. Once that byte arrives the rest of the request gets the full
        ``timeout``.
        """
        self.state = ConnectionState.PARSING
        self._idle_wait = bool(self.requests_handled) and not self.reader.has_pending
        wait = self.keep_alive_timeout if self._idle_wait else self.timeout
        self._settimeout(wait)

    def _recv(self, size: int) -> bytes:
        data = self.socket.recv(size)
        self.last_activity = time.time()
        if data and self._idle_wait:
            self._idle_wait = False
            self._settimeout(self.timeout)
        return data

    def _settimeout(self, value: Optional[float]) -> None:
        try:
            self.socket.settimeout(value)
        except OSError:
            # Socket already closed; the next read reports end of stream
            pass

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> bool:
        """
        Send bytes with sendall().

        Returns:
            True if every byte was sent, False if the connection is gone.
        """
        if self.closed:
            return False

        self.state = ConnectionState.WRITING
        self._settimeout(self.timeout)
        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False
        self.last_activity = time.time()
        return True

    def send_stream(self, chunks: Iterable[bytes]) -> bool:
        """
        Send an iterable of byte chunks, stopping at the first failure.

        The connection is checked before each chunk so a connection closed
        from another thread (server shutdown) stops the write promptly.
        """
        for chunk in chunks:
            if not chunk:
                continue
            if not self.send(chunk):
                return False
        return True

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self) -> None:
        """
        Close the connection gracefully: FIN, drain, close.

        Safe to call more than once.
        """
        if self.closed:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
