"""
=============================================================================
BUFFERED BYTE STREAM READER
=============================================================================

TCP is a byte stream, not a message stream. One recv() can return half a
request line, three requests at once, or headers and body glued together.
ByteStreamReader hides that: it keeps leftover bytes in a buffer and
offers the two reads an HTTP/1.x parser needs.

    ┌────────────────────────────────────────────────────────────────────┐
    │                                                                    │
    │   recv() ─► b"GET / HT"        buffer: b"GET / HT"                 │
    │   recv() ─► b"TP/1.1\\r\\nHo"    buffer: b"GET / HTTP/1.1\\r\\nHo"     │
    │                                                                    │
    │   read_line()   ─► "GET / HTTP/1.1"       buffer: b"Ho"            │
    │   read_exact(n) ─► exactly n bytes, however many recv() it takes   │
    │                                                                    │
    └────────────────────────────────────────────────────────────────────┘

Bytes left over after one request stay buffered and become the start of
the next request on a keep-alive connection (pipelining for free).

Timeouts are not handled here: a socket timeout surfaces as TimeoutError
and the connection loop decides what it means.
=============================================================================
"""

import logging
from collections import deque
from typing import Callable, Iterable

from ..errors import ConnectionClosed, IncompleteBody, LineTooLong


logger = logging.getLogger(__name__)


class ByteStreamReader:
    """
    Line- and length-delimited reads over a recv(n) callable.

    Args:
        recv: Function returning up to n bytes, b"" at end of stream.
              Normally ``socket.recv``.
        buffer_size: Bytes requested per recv() call.
        max_line_size: Longest line accepted before LineTooLong.
    """

    def __init__(
        self,
        recv: Callable[[int], bytes],
        buffer_size: int = 8192,
        max_line_size: int = 8192,
    ):
        self._recv = recv
        self.buffer_size = buffer_size
        self.max_line_size = max_line_size
        self._buffer = bytearray()
        self._eof = False
        self.bytes_received = 0

    @classmethod
    def from_chunks(cls, chunks: Iterable[bytes], **kwargs) -> "ByteStreamReader":
        """
        Build a reader over in-memory segments.

        Each chunk is delivered by a separate recv() call, which makes it
        easy to reproduce a client that splits a request across packets:

            reader = ByteStreamReader.from_chunks([b"GET / HT", b"TP/1.1\\r\\n\\r\\n"])
        """
        pending = deque(chunks)

        def recv(size: int) -> bytes:
            if not pending:
                return b""
            chunk = pending.popleft()
            if len(chunk) > size:
                pending.appendleft(chunk[size:])
                chunk = chunk[:size]
            return chunk

        return cls(recv, **kwargs)

    @property
    def has_pending(self) -> bool:
        """True if bytes of an unfinished message are buffered."""
        return bool(self._buffer)

    @property
    def at_eof(self) -> bool:
        return self._eof and not self._buffer

    def _fill(self) -> bool:
        """Read once from the source. Returns False at end of stream."""
        if self._eof:
            return False

        try:
            data = self._recv(self.buffer_size)
        except TimeoutError:
            raise
        except (ConnectionResetError, BrokenPipeError, OSError) as e:
            # Reset by peer, or the socket was closed under us during shutdown
            logger.debug(f"recv failed, treating as end of stream: {e}")
            data = b""

        if not data:
            self._eof = True
            return False

        self.bytes_received += len(data)
        self._buffer += data
        return True

    def read_line(self) -> str:
        """
        Return the next line without its CRLF (a bare LF is accepted too).

        Header bytes are decoded as ISO-8859-1, which maps every byte to
        one character and so never fails.

        Raises:
            ConnectionClosed: End of stream before a complete line.
            LineTooLong: No line terminator within max_line_size bytes.
            TimeoutError: The underlying socket timed out.
        """
        scanned = 0
        while True:
            index = self._buffer.find(b"\n", scanned)
            if index >= 0:
                if index > self.max_line_size:
                    raise LineTooLong(f"Line exceeds {self.max_line_size} bytes")
                line = bytes(self._buffer[:index])
                del self._buffer[: index + 1]
                if line.endswith(b"\r"):
                    line = line[:-1]
                return line.decode("iso-8859-1")

            if len(self._buffer) > self.max_line_size:
                raise LineTooLong(f"Line exceeds {self.max_line_size} bytes")

            scanned = len(self._buffer)
            if not self._fill():
                if self._buffer:
                    logger.debug(f"Stream ended inside a line ({len(self._buffer)} bytes dropped)")
                    self._buffer.clear()
                raise ConnectionClosed("Connection closed by peer")

    def read_exact(self, n: int) -> bytes:
        """
        Return exactly n bytes.

        Raises:
            IncompleteBody: The stream ended before n bytes arrived.
            TimeoutError: The underlying socket timed out.
        """
        if n < 0:
            raise ValueError(f"Cannot read a negative number of bytes: {n}")

        while len(self._buffer) < n:
            if not self._fill():
                received = len(self._buffer)
                self._buffer.clear()
                raise IncompleteBody(expected=n, received=received)

        data = bytes(self._buffer[:n])
        del self._buffer[:n]
        return data

    def read_to_eof(self) -> bytes:
        """Return everything buffered plus whatever arrives until end of stream."""
        while self._fill():
            pass
        data = bytes(self._buffer)
        self._buffer.clear()
        return data
