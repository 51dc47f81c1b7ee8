"""
Unit tests for the buffered byte stream reader.
"""

import pytest

from wirehttp.core.stream import ByteStreamReader
from wirehttp.errors import ConnectionClosed, IncompleteBody, LineTooLong


class TestReadLine:
    """Tests for line-delimited reads."""

    def test_line_split_across_segments(self):
        """A line arriving in several recv() calls is reassembled."""
        reader = ByteStreamReader.from_chunks([b"GET / HT", b"TP/1.1\r", b"\nHost: x\r\n"])

        assert reader.read_line() == "GET / HTTP/1.1"
        assert reader.read_line() == "Host: x"

    def test_bare_lf_accepted(self):
        """Lines ending in LF only are accepted."""
        reader = ByteStreamReader.from_chunks([b"one\ntwo\r\n"])

        assert reader.read_line() == "one"
        assert reader.read_line() == "two"

    def test_many_lines_in_one_segment(self):
        """Leftover bytes stay buffered for the next read."""
        reader = ByteStreamReader.from_chunks([b"a\r\nb\r\n\r\nrest"])

        assert [reader.read_line() for _ in range(3)] == ["a", "b", ""]
        assert reader.has_pending is True

    def test_latin1_decoding(self):
        """Non-ASCII header bytes decode one byte to one character."""
        reader = ByteStreamReader.from_chunks([b"caf\xe9\r\n"])

        assert reader.read_line() == "café"

    def test_line_too_long(self):
        """A line without terminator beyond the limit is rejected."""
        reader = ByteStreamReader.from_chunks([b"x" * 2000], max_line_size=1024)

        with pytest.raises(LineTooLong):
            reader.read_line()

    def test_eof_before_line(self):
        """End of stream before a full line raises ConnectionClosed."""
        reader = ByteStreamReader.from_chunks([b"partial"])

        with pytest.raises(ConnectionClosed):
            reader.read_line()

    def test_eof_on_empty_stream(self):
        reader = ByteStreamReader.from_chunks([])

        with pytest.raises(ConnectionClosed):
            reader.read_line()
        assert reader.at_eof is True


class TestReadExact:
    """Tests for length-delimited reads."""

    def test_exact_across_segments(self):
        """Body bytes spread over many segments are joined."""
        reader = ByteStreamReader.from_chunks([b"na", b"me=Al", b"ice"])

        assert reader.read_exact(10) == b"name=Alice"
        assert reader.has_pending is False

    def test_exact_leaves_remainder(self):
        reader = ByteStreamReader.from_chunks([b"abcdef"])

        assert reader.read_exact(4) == b"abcd"
        assert reader.read_exact(2) == b"ef"

    def test_zero_length(self):
        reader = ByteStreamReader.from_chunks([])

        assert reader.read_exact(0) == b""

    def test_incomplete_body(self):
        """Fewer bytes than promised raises IncompleteBody with both counts."""
        reader = ByteStreamReader.from_chunks([b"abc"])

        with pytest.raises(IncompleteBody) as exc_info:
            reader.read_exact(10)

        assert exc_info.value.expected == 10
        assert exc_info.value.received == 3
        assert exc_info.value.status_code == 400

    def test_negative_length(self):
        reader = ByteStreamReader.from_chunks([b"abc"])

        with pytest.raises(ValueError):
            reader.read_exact(-1)

    def test_chunks_larger_than_buffer(self):
        """from_chunks honours the recv() size argument."""
        reader = ByteStreamReader.from_chunks([b"a" * 5000], buffer_size=1024)

        assert reader.read_exact(5000) == b"a" * 5000
        assert reader.bytes_received == 5000


class TestRecvErrors:
    """Socket errors during recv()."""

    def test_reset_is_end_of_stream(self):
        """A reset connection behaves like a closed one."""

        def recv(size):
            raise ConnectionResetError("reset by peer")

        reader = ByteStreamReader(recv)

        with pytest.raises(ConnectionClosed):
            reader.read_line()

    def test_timeout_propagates(self):
        """Timeouts surface unchanged; the caller decides what they mean."""

        def recv(size):
            raise TimeoutError("timed out")

        reader = ByteStreamReader(recv)

        with pytest.raises(TimeoutError):
            reader.read_line()


class TestReadToEof:
    def test_returns_buffered_and_remaining_bytes(self):
        reader = ByteStreamReader.from_chunks([b"status\r\nbody-", b"part1", b"-part2"])

        assert reader.read_line() == "status"
        assert reader.read_to_eof() == b"body-part1-part2"
        assert reader.at_eof is True

    def test_empty_stream(self):
        assert ByteStreamReader.from_chunks([]).read_to_eof() == b""
