"""
=============================================================================
CORE - Sockets, Connections and Workers
=============================================================================

The transport layer. Nothing here knows about HTTP beyond reading lines:

    SocketServer      binds, listens and accepts; one Connection per client
    Connection        socket wrapper with a state machine and send helpers
    ByteStreamReader  buffered line / exact-length reads over recv()
    ThreadPool        bounded queue of worker threads

    ┌──────────────┐ accept() ┌────────────┐ submit() ┌────────────┐
    │ SocketServer │ ───────► │ Connection │ ───────► │ ThreadPool │
    └──────────────┘          └────────────┘          └────────────┘
=============================================================================
"""

from .connection import Connection, ConnectionState
from .socket_server import SocketServer
from .stream import ByteStreamReader
from .thread_pool import ThreadPool

__all__ = [
    "ByteStreamReader",
    "Connection",
    "ConnectionState",
    "SocketServer",
    "ThreadPool",
]
