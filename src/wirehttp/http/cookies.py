"""
Cookies: parsing the Cookie request header and building Set-Cookie lines.

    Cookie: session=abc123; theme=dark
        └──► {"session": "abc123", "theme": "dark"}

    Cookie("session", "abc123", path="/", http_only=True, max_age=3600)
        └──► Set-Cookie: session=abc123; Path=/; Max-Age=3600; HttpOnly
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Optional


_SAME_SITE_VALUES = {"Strict", "Lax", "None"}


def parse_cookie_header(value: Optional[str]) -> dict[str, str]:
    """
    Split a Cookie header into name/value pairs.

    Malformed pairs (no "=") are skipped; quoted values are unquoted.
    The last occurrence of a name wins.
    """
    cookies: dict[str, str] = {}
    if not value:
        return cookies

    for pair in value.split(";"):
        name, sep, val = pair.strip().partition("=")
        if not sep or not name:
            continue
        val = val.strip()
        if len(val) >= 2 and val[0] == val[-1] == '"':
            val = val[1:-1]
        cookies[name.strip()] = val
    return cookies


@dataclass
class Cookie:
    """
    One cookie to send with a response.

    Attributes mirror the Set-Cookie attributes of RFC 6265. ``expires``
    must be timezone-aware or is assumed to be UTC.
    """

    name: str
    value: str = ""
    path: Optional[str] = None
    domain: Optional[str] = None
    expires: Optional[datetime] = None
    max_age: Optional[int] = None
    secure: bool = False
    http_only: bool = False
    same_site: Optional[str] = None

    def __post_init__(self):
        if not self.name or any(c in self.name for c in ' =;,\t\r\n"'):
            raise ValueError(f"Invalid cookie name: {self.name!r}")
        if any(c in self.value for c in ";\r\n"):
            raise ValueError(f"Invalid cookie value for {self.name!r}")
        if self.same_site is not None and self.same_site not in _SAME_SITE_VALUES:
            raise ValueError(f"same_site must be one of {sorted(_SAME_SITE_VALUES)}")

    def to_header(self) -> str:
        """The value of a Set-Cookie header for this cookie."""
        parts = [f"{self.name}={self.value}"]

        if self.path:
            parts.append(f"Path={self.path}")
        if self.domain:
            parts.append(f"Domain={self.domain}")
        if self.expires is not None:
            expires = self.expires
            if expires.tzinfo is None:
                expires = expires.replace(tzinfo=timezone.utc)
            parts.append(f"Expires={format_datetime(expires.astimezone(timezone.utc), usegmt=True)}")
        if self.max_age is not None:
            parts.append(f"Max-Age={self.max_age}")
        if self.secure:
            parts.append("Secure")
        if self.http_only:
            parts.append("HttpOnly")
        if self.same_site:
            parts.append(f"SameSite={self.same_site}")

        return "; ".join(parts)
