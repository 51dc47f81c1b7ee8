"""
pytest configuration and fixtures.
"""

import socket
import threading
from typing import Callable, Generator, Optional

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from wirehttp import EventRecorder, HTTPServer, ServerConfig
from wirehttp.core import ByteStreamReader


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /api/users?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_form_request() -> bytes:
    """Sample form POST, the body split from the head by the caller if needed."""
    body = b"name=Alice&age=30"
    return (
        b"POST /users HTTP/1.1\r\n"
        b"Host: localhost\r\n"
        b"Content-Type: application/x-www-form-urlencoded\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"\r\n"
        + body
    )


@pytest.fixture
def config() -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        keep_alive_timeout=2.0,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


class ServerThread:
    """Runs an HTTPServer in a background thread."""

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self) -> "ServerThread":
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")
        return self

    def stop(self) -> None:
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    def connect(self, timeout: float = 5.0) -> socket.socket:
        return socket.create_connection(("127.0.0.1", self.port), timeout=timeout)


@pytest.fixture
def start_server() -> Generator[Callable[[HTTPServer], ServerThread], None, None]:
    """Start servers on demand; every one started is stopped after the test."""
    started: list[ServerThread] = []

    def start(server: HTTPServer) -> ServerThread:
        thread = ServerThread(server).start()
        started.append(thread)
        return thread

    yield start

    for thread in started:
        thread.stop()


# =============================================================================
# CLIENT HELPERS
# =============================================================================


def read_response(sock: socket.socket) -> tuple[int, dict[str, str], bytes]:
    """
    Read one response: (status, headers with lowercased names, body).

    The body is delimited by Content-Length, or by the server closing the
    connection when there is none.
    """
    reader = ByteStreamReader(sock.recv)
    status_line = reader.read_line()
    status = int(status_line.split(" ", 2)[1])

    headers: dict[str, str] = {}
    while True:
        line = reader.read_line()
        if not line:
            break
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()

    if "content-length" in headers:
        body = reader.read_exact(int(headers["content-length"]))
    else:
        body = reader.read_to_eof()
    return status, headers, body


def read_all(sock: socket.socket) -> bytes:
    """Read until the server closes the connection."""
    chunks = []
    while True:
        data = sock.recv(65536)
        if not data:
            break
        chunks.append(data)
    return b"".join(chunks)


def raw_request(port: int, data: bytes, timeout: float = 5.0) -> bytes:
    """Send raw bytes on a fresh connection and return everything sent back."""
    with socket.create_connection(("127.0.0.1", port), timeout=timeout) as sock:
        sock.sendall(data)
        return read_all(sock)
