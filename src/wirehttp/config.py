"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Plain configuration values consumed by the server, the connection loop and
the static file handler. Nothing here reads files: a bootstrap layer (the
CLI in __main__, or application code) builds a ServerConfig directly or
through from_env() and hands it to HTTPServer.

    Priority (highest to lowest):

    1. Command-line arguments      python -m wirehttp --port 3000
    2. Environment variables       HTTP_PORT=3000 python -m wirehttp
    3. Defaults below

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP server.

    NETWORK     host, port, backlog, buffer_size, timeout
    HTTP        keep_alive, keep_alive_timeout, max_header_size,
                max_headers, max_body_size, error_status, server_header
    THREADING   min_workers, max_workers, queue_size
    STATIC      static_dir, static_url_prefix
    LOGGING     log_level, log_format
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """Address to bind. "0.0.0.0" listens on every interface."""

    port: int = 8080
    """Port to listen on. 0 asks the OS for a free port (see HTTPServer.address)."""

    backlog: int = 128
    """Pending connections the kernel queues before refusing new ones."""

    buffer_size: int = 8192
    """Bytes requested from recv() per read."""

    timeout: Optional[float] = 30.0
    """
    Read timeout while a request is in flight (first byte to last body byte).
    None blocks forever, which lets one silent client hold a worker.
    """

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    """Allow persistent connections when the client asks for them."""

    keep_alive_timeout: float = 5.0
    """Idle seconds between requests before a persistent connection is closed."""

    max_header_size: int = 8192
    """Longest accepted request line or header line, in bytes."""

    max_headers: int = 100
    """Most header fields accepted in one request."""

    max_body_size: int = 10 * 1024 * 1024  # 10 MB
    """Largest Content-Length accepted. Larger requests get 413."""

    error_status: int = 500
    """Status used when a middleware or handler fails without naming one."""

    server_header: bool = False
    """
    Add Date and Server headers to every response.
    Off by default so responses carry only what handlers set.
    """

    server_name: str = "wirehttp/1.0"
    """Value of the Server header when server_header is on."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Worker threads started up front. Each one serves one connection at a time."""

    max_workers: int = 16
    """Upper bound the pool scales to when every worker is busy."""

    queue_size: int = 100
    """Accepted connections allowed to wait for a worker before answering 503."""

    # ─────────────────────────────────────────────────────────────────────
    # STATIC FILES
    # ─────────────────────────────────────────────────────────────────────

    static_dir: Optional[str] = None
    """Directory served under static_url_prefix. None disables it."""

    static_url_prefix: str = "/static"

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR or CRITICAL."""

    log_format: str = "text"
    """'text' or 'json'. Used by LoggingMiddleware for access lines."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        HTTP_HOST                Server host (default: 127.0.0.1)
        HTTP_PORT                Server port (default: 8080)
        HTTP_WORKERS             Max worker threads (default: 16)
        HTTP_TIMEOUT             Request read timeout in seconds (default: 30)
        HTTP_KEEP_ALIVE          Enable keep-alive (default: true)
        HTTP_KEEP_ALIVE_TIMEOUT  Idle timeout in seconds (default: 5)
        HTTP_STATIC_DIR          Static files directory (default: unset)
        HTTP_LOG_LEVEL           Logging level (default: INFO)
        """
        workers = int(os.getenv("HTTP_WORKERS", "16"))
        return cls(
            host=os.getenv("HTTP_HOST", "127.0.0.1"),
            port=int(os.getenv("HTTP_PORT", "8080")),
            min_workers=min(cls.min_workers, workers),
            max_workers=workers,
            timeout=float(os.getenv("HTTP_TIMEOUT", "30")),
            keep_alive=_env_bool("HTTP_KEEP_ALIVE", True),
            keep_alive_timeout=float(os.getenv("HTTP_KEEP_ALIVE_TIMEOUT", "5")),
            static_dir=os.getenv("HTTP_STATIC_DIR"),
            log_level=os.getenv("HTTP_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """Raise ValueError on the first invalid setting. Called before binding."""
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")

        if self.max_header_size < 256:
            raise ValueError("max_header_size must be >= 256")

        if self.max_body_size < 0:
            raise ValueError("max_body_size must be >= 0")

        if not 100 <= self.error_status <= 599:
            raise ValueError(f"error_status must be 100-599, got {self.error_status}")

        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")

        if self.log_format not in ("text", "json"):
            raise ValueError("log_format must be 'text' or 'json'")
