"""
Case-insensitive HTTP header mapping.

HTTP header names are case-insensitive ("Content-Type" == "content-type")
but responses should go out with the spelling the application used.
Headers keeps both: lookups use the lowercased name, iteration and
serialization use the name as first written.

    headers = Headers({"Content-Type": "text/plain"})
    headers["content-type"]        # 'text/plain'
    list(headers)                  # ['Content-Type']

Request headers are frozen after parsing; assigning to them raises
TypeError.
"""

from collections.abc import MutableMapping
from typing import Iterable, Iterator, Mapping, Optional, Union


HeaderSource = Union[Mapping[str, str], Iterable[tuple[str, str]], None]


class Headers(MutableMapping):
    """A MutableMapping[str, str] with case-insensitive keys."""

    __slots__ = ("_store", "_frozen")

    def __init__(self, source: HeaderSource = None):
        self._store: dict[str, tuple[str, str]] = {}
        self._frozen = False
        if source is not None:
            pairs = source.items() if isinstance(source, Mapping) else source
            for name, value in pairs:
                self[name] = value

    def __getitem__(self, name: str) -> str:
        return self._store[name.lower()][1]

    def __setitem__(self, name: str, value: str) -> None:
        self._check_mutable()
        key = name.lower()
        existing = self._store.get(key)
        # Keep the original spelling and position when a header is replaced
        self._store[key] = (existing[0] if existing else name, str(value))

    def __delitem__(self, name: str) -> None:
        self._check_mutable()
        del self._store[name.lower()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._store

    def __iter__(self) -> Iterator[str]:
        return (original for original, _ in self._store.values())

    def __len__(self) -> int:
        return len(self._store)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Headers):
            return self.lower_items() == other.lower_items()
        if isinstance(other, Mapping):
            return self == Headers(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"Headers({dict(self.items())!r})"

    def _check_mutable(self) -> None:
        if self._frozen:
            raise TypeError("Request headers are read-only")

    def add(self, name: str, value: str, separator: str = ", ") -> None:
        """Append a value to an existing header, or set it if absent."""
        current = self.get(name)
        self[name] = value if current is None else f"{current}{separator}{value}"

    def get_int(self, name: str) -> Optional[int]:
        value = self.get(name)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    def lower_items(self) -> dict[str, str]:
        return {key: value for key, (_, value) in self._store.items()}

    def copy(self) -> "Headers":
        return Headers(self.items())

    def freeze(self) -> "Headers":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen
