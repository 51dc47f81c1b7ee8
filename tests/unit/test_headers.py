"""
Unit tests for the case-insensitive header map.
"""

import pytest

from wirehttp.http.headers import Headers


class TestHeaders:
    """Tests for the case-insensitive header map."""

    def test_case_insensitive(self):
        headers = Headers({"Content-Type": "text/plain"})

        assert headers["content-type"] == "text/plain"
        assert "CONTENT-TYPE" in headers
        assert list(headers) == ["Content-Type"]

    def test_replace_keeps_spelling_and_position(self):
        headers = Headers([("X-A", "1"), ("X-B", "2")])
        headers["x-a"] = "3"

        assert list(headers.items()) == [("X-A", "3"), ("X-B", "2")]

    def test_add(self):
        headers = Headers()
        headers.add("Accept", "a")
        headers.add("accept", "b")

        assert headers["Accept"] == "a, b"

    def test_get_int(self):
        headers = Headers({"Content-Length": "12", "X-Bad": "x"})

        assert headers.get_int("content-length") == 12
        assert headers.get_int("X-Bad") is None
        assert headers.get_int("Missing") is None

    def test_frozen(self):
        headers = Headers({"A": "1"}).freeze()

        with pytest.raises(TypeError):
            headers["B"] = "2"
        with pytest.raises(TypeError):
            del headers["A"]
        assert headers.copy().frozen is False

    def test_equality(self):
        assert Headers({"A": "1"}) == {"a": "1"}
        assert Headers({"A": "1"}) != {"a": "2"}
