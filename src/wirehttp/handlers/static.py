"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Serves files below a root directory. Mount it on a wildcard route and it
reads the file path from the captured parameter:

    static = StaticFileHandler("./public")
    router.add_route("GET", "/static/*path", static)

    GET /static/css/app.css  ──►  ./public/css/app.css

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

The captured path is attacker-controlled. Two checks keep it inside root:

    1. Reject outright: any ".." segment, absolute paths, NUL bytes.
    2. Resolve (following symlinks) and require the result to still be
       below the resolved root. A symlink pointing out of root fails here.

Either failure raises ForbiddenPath (403).

=============================================================================
OUTCOMES
=============================================================================

    regular file (or directory with index file) ..... 200, streamed body
    If-None-Match matches the ETag .................. 304, no body
    escapes the root ................................ ForbiddenPath  403
    missing, or a directory without index ........... FileNotFound   404
    exists but cannot be opened ..................... FileUnreadable 500

The file is opened before the response is returned, so an unreadable file
still becomes a clean 500. From then on the open handle belongs to a
FileBody. It is closed when iteration finishes, when the writer gives up
on a disconnected client, or when the response is discarded; whichever
comes first.
=============================================================================
"""

import logging
import os
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

from ..errors import FileNotFound, FileUnreadable, ForbiddenPath
from ..http.context import Context
from ..http.mime_types import get_content_type
from ..http.response import Response, format_http_date
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class FileBody:
    """
    Streamed response body over an open binary file.

    Iterating yields chunks until EOF and then closes the file. close()
    may be called at any time, any number of times.
    """

    def __init__(self, file: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._file = file
        self.chunk_size = chunk_size

    @property
    def closed(self) -> bool:
        return self._file.closed

    def __iter__(self) -> Iterator[bytes]:
        try:
            while not self._file.closed:
                chunk = self._file.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.close()

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()


class StaticFileHandler:
    """
    Handler serving files from ``root_dir``.

    Args:
        root_dir: Directory to serve. Must exist.
        param: Route parameter holding the relative file path.
        index_file: File served for directory requests, or None.
        chunk_size: Bytes per streamed chunk.
        cache_max_age: Adds "Cache-Control: public, max-age=N" when set.
    """

    def __init__(
        self,
        root_dir: Union[str, Path],
        param: str = "path",
        index_file: Optional[str] = "index.html",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        cache_max_age: Optional[int] = None,
    ):
        self.root_dir = Path(root_dir).resolve()
        if not self.root_dir.is_dir():
            raise ValueError(f"Static root directory does not exist: {root_dir}")
        self.param = param
        self.index_file = index_file
        self.chunk_size = chunk_size
        self.cache_max_age = cache_max_age

    def __repr__(self) -> str:
        return f"StaticFileHandler({str(self.root_dir)!r})"

    def resolve(self, relative: str) -> Path:
        """
        Map a request path onto a file below root_dir.

        Raises:
            ForbiddenPath: The path escapes root_dir.
            FileNotFound: Nothing servable exists there.
        """
        parts = relative.replace("\\", "/").split("/")
        if relative.startswith("/") or "\x00" in relative or ".." in parts:
            logger.warning(f"Path traversal attempt: {relative!r}")
            raise ForbiddenPath(f"Path escapes the static root: {relative!r}")

        candidate = self._inside_root((self.root_dir / relative).resolve(), relative)

        if candidate.is_dir():
            if not self.index_file:
                raise FileNotFound(f"Directory without index: {relative!r}")
            candidate = self._inside_root((candidate / self.index_file).resolve(), relative)

        if not candidate.is_file():
            raise FileNotFound(f"No such file: {relative!r}")
        return candidate

    def _inside_root(self, resolved: Path, relative: str) -> Path:
        try:
            resolved.relative_to(self.root_dir)
        except ValueError:
            logger.warning(f"Path traversal attempt: {relative!r} resolves outside the root")
            raise ForbiddenPath(f"Path escapes the static root: {relative!r}") from None
        return resolved

    def open(self, path: Path) -> tuple[BinaryIO, os.stat_result]:
        """
        Open a resolved file for reading.

        Raises:
            FileNotFound: The file vanished after resolve().
            FileUnreadable: Permission denied or another OS error.
        """
        try:
            file = open(path, "rb")
        except FileNotFoundError:
            raise FileNotFound(f"No such file: {path.name}") from None
        except OSError as e:
            logger.error(f"Cannot open {path}: {e}")
            raise FileUnreadable(f"Cannot read {path.name}: {e.strerror or e}") from e

        try:
            return file, os.fstat(file.fileno())
        except OSError as e:
            file.close()
            raise FileUnreadable(f"Cannot stat {path.name}: {e}") from e

    def __call__(self, ctx: Context) -> Response:
        path = self.resolve(ctx.params.get(self.param, ""))
        file, stat = self.open(path)

        etag = f'"{int(stat.st_mtime)}-{stat.st_size}"'
        response = ctx.response
        response.set_header("ETag", etag)
        response.set_header("Last-Modified", format_http_date(stat.st_mtime))
        if self.cache_max_age is not None:
            response.set_header("Cache-Control", f"public, max-age={self.cache_max_age}")

        if ctx.request.headers.get("If-None-Match") == etag:
            file.close()
            response.set_status(HTTPStatus.NOT_MODIFIED)
            return response

        response.set_status(HTTPStatus.OK)
        response.set_header("Content-Type", get_content_type(path))
        response.set_header("Content-Length", str(stat.st_size))
        response.set_body(FileBody(file, self.chunk_size))
        return response
