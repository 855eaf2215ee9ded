"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Serves files and directory listings from a root directory.

=============================================================================
FROM URL TO ACTION
=============================================================================

Every local request goes through two pure steps before anything is opened:

    request.path ──► resolve() ──► ResolvedTarget ──► classify() ──► Action

    ┌──────────────────────────────┬──────────────────────────────────────┐
    │ ResolvedTarget               │ Action                               │
    ├──────────────────────────────┼──────────────────────────────────────┤
    │ Missing                      │ NOT_FOUND            404 HTML page   │
    │ Directory, path ends in "/"  │ LIST_DIRECTORY       index or list   │
    │ Directory, no trailing "/"   │ REDIRECT_WITH_SLASH  301 to path + / │
    │ RegularFile                  │ SERVE_FILE           200 / 304       │
    └──────────────────────────────┴──────────────────────────────────────┘

Why redirect "/docs" to "/docs/"? Relative links inside the listing (or
inside docs/index.html) resolve against the URL's last slash. Without the
redirect, "guide.html" on /docs would point at /guide.html.

=============================================================================
PATH NORMALIZATION
=============================================================================

    "/a/./b//c/../d.txt"  ──normpath──►  "/a/b/d.txt"
    "/../../etc/passwd"   ──normpath──►  "/etc/passwd"  (under root!)

The URL path is normalized as an absolute POSIX path first, so ".." can
never climb above "/". It is then joined under root and the result must
still lie inside root; anything else is reported as Missing (404), never
read. Symlinks inside root are followed without further checks.

=============================================================================
SERVING A FILE
=============================================================================

    1. Cache-Control / Expires / Last-Modified      (freshness.py)
    2. If-Modified-Since == Last-Modified  →  304, no body
    3. Content-Type from the extension              (mime_types.py)
    4. gzip / deflate wrapper if eligible           (compression.py)
    5. Body streamed in chunks, never read whole

Headers are complete before the handler returns; the connection writes
them before the first body chunk.

=============================================================================
"""

from dataclasses import dataclass
from enum import Enum
from html import escape
from typing import BinaryIO, Optional, Union
from urllib.parse import quote
import logging
import os
import posixpath
import stat

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, text_response
from ..http.status_codes import HTTPStatus
from ..http.mime_types import lookup
from ..http.compression import is_eligible, negotiate
from ..http.freshness import is_fresh, set_fresh_headers


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


# =============================================================================
# RESOLVED TARGETS
# =============================================================================

@dataclass(frozen=True)
class RegularFile:
    path: str
    stat: os.stat_result


@dataclass(frozen=True)
class Directory:
    path: str
    has_trailing_slash: bool


@dataclass(frozen=True)
class Missing:
    path: str


ResolvedTarget = Union[RegularFile, Directory, Missing]


class Action(Enum):
    SERVE_FILE = "serve_file"
    LIST_DIRECTORY = "list_directory"
    REDIRECT_WITH_SLASH = "redirect_with_slash"
    NOT_FOUND = "not_found"


def normalize_url_path(request_path: str) -> str:
    """
    Collapse ".", ".." and repeated slashes in a URL path.

        >>> normalize_url_path("/a/./b//c/../d.txt")
        '/a/b/d.txt'
        >>> normalize_url_path("/../../x")
        '/x'
    """
    # A leading "//" is kept by normpath (POSIX implementation-defined root)
    return posixpath.normpath("/" + request_path.lstrip("/"))


def resolve(root: str, request_path: str) -> ResolvedTarget:
    """
    Map a decoded URL path onto the filesystem under root.

    Never raises: anything that cannot be stat'ed, lies outside root, or is
    neither a regular file nor a directory is Missing.
    """
    root_abs = os.path.abspath(root)
    relative = normalize_url_path(request_path).lstrip("/")
    full_path = os.path.abspath(os.path.join(root_abs, *relative.split("/"))) if relative else root_abs

    if os.path.commonpath([root_abs, full_path]) != root_abs:
        logger.warning(f"Path outside root rejected: {request_path}")
        return Missing(full_path)

    try:
        st = os.stat(full_path)
    except (OSError, ValueError):
        # ValueError: embedded NUL byte from a %00 in the URL
        return Missing(full_path)

    if stat.S_ISDIR(st.st_mode):
        return Directory(full_path, request_path.endswith("/"))
    if stat.S_ISREG(st.st_mode):
        return RegularFile(full_path, st)
    return Missing(full_path)


def classify(target: ResolvedTarget) -> Action:
    if isinstance(target, Missing):
        return Action.NOT_FOUND
    if isinstance(target, Directory):
        if target.has_trailing_slash:
            return Action.LIST_DIRECTORY
        return Action.REDIRECT_WITH_SLASH
    return Action.SERVE_FILE


# =============================================================================
# FILE STREAM
# =============================================================================

class FileStream:
    """
    Iterates an open file in fixed-size chunks and closes it at EOF.

    close() may be called at any point, including before iteration starts
    (HEAD requests) or after the client has disconnected.
    """

    def __init__(self, fileobj: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.fileobj = fileobj
        self.chunk_size = chunk_size

    def __iter__(self) -> "FileStream":
        return self

    def __next__(self) -> bytes:
        if self.fileobj.closed:
            raise StopIteration
        chunk = self.fileobj.read(self.chunk_size)
        if not chunk:
            self.close()
            raise StopIteration
        return chunk

    def close(self) -> None:
        if not self.fileobj.closed:
            self.fileobj.close()


# =============================================================================
# HANDLER
# =============================================================================

class StaticFileHandler:
    """
    Handler for everything that is not proxied.

    Args:
        root: Directory to serve. Paths never resolve outside it.
        index_page: File served for "dir/" when present (index.html).
        max_age: Cache-Control max-age and Expires offset, in seconds.
        zip_match: Regex over the extension (".css") selecting files that
                   may be compressed. Empty disables compression.
        chunk_size: Read size for file streaming.
    """

    def __init__(
        self,
        root: str,
        index_page: str = "index.html",
        max_age: int = 3600,
        zip_match: str = r"^\.(css|js|html)$",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.root = os.path.abspath(root)
        self.index_page = index_page
        self.max_age = max_age
        self.zip_match = zip_match
        self.chunk_size = chunk_size

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        target = resolve(self.root, request.path)
        action = classify(target)
        logger.debug(f"{request.method} {request.path} → {action.value}")

        if action is Action.NOT_FOUND:
            return self._not_found(request)
        if action is Action.REDIRECT_WITH_SLASH:
            return self._redirect_with_slash(request)
        if action is Action.LIST_DIRECTORY:
            index = self._index_file(target.path)
            if index is not None:
                return self._serve_file(index, request)
            return self._list_directory(target, request)
        return self._serve_file(target, request)

    __call__ = handle

    # ─────────────────────────────────────────────────────────────────────
    # Files
    # ─────────────────────────────────────────────────────────────────────

    def _index_file(self, directory: str) -> Optional[RegularFile]:
        """The index page inside a directory, if it is a regular file."""
        path = os.path.join(directory, self.index_page)
        try:
            st = os.stat(path)
        except OSError:
            return None
        if not stat.S_ISREG(st.st_mode):
            return None
        return RegularFile(path, st)

    def _serve_file(self, target: RegularFile, request: HTTPRequest) -> HTTPResponse:
        response = HTTPResponse(status=HTTPStatus.OK)
        modified = set_fresh_headers(response, target.stat.st_mtime, self.max_age)

        if is_fresh(request.get_header("if-modified-since") or None, modified):
            return HTTPResponse(status=HTTPStatus.NOT_MODIFIED, headers=response.headers)

        try:
            fileobj = open(target.path, "rb")
        except OSError as e:
            logger.error(f"Cannot open {target.path}: {e}")
            return text_response(HTTPStatus.INTERNAL_SERVER_ERROR, str(e))

        response.set_header("Content-Type", lookup(target.path))

        eligible = is_eligible(os.path.splitext(target.path)[1], self.zip_match)
        if eligible:
            response.set_header("Vary", "Accept-Encoding")

        stream, encoding = negotiate(
            FileStream(fileobj, self.chunk_size),
            request.get_header("accept-encoding") or None,
            eligible,
        )
        if encoding is not None:
            response.set_header("Content-Encoding", encoding)
        else:
            response.set_header("Content-Length", str(target.stat.st_size))

        response.stream = stream
        return response

    # ─────────────────────────────────────────────────────────────────────
    # Directories
    # ─────────────────────────────────────────────────────────────────────

    def _list_directory(self, target: Directory, request: HTTPRequest) -> HTTPResponse:
        """
        One link per entry, in the order the filesystem returns them.

            <h1>Index of /docs/</h1>
            <p><a href='/docs/guide.html'>guide.html</a></p>
            <p><a href='/docs/images/'>images</a></p>
        """
        try:
            names = os.listdir(target.path)
        except OSError as e:
            logger.error(f"Cannot list {target.path}: {e}")
            return text_response(HTTPStatus.INTERNAL_SERVER_ERROR, str(e))

        base = request.path if request.path.endswith("/") else request.path + "/"
        parts = [f"<h1>Index of {escape(request.path)}</h1>"]
        for name in names:
            # Undecodable names carry surrogate escapes: link the original
            # bytes, display them with U+FFFD
            link = quote(os.fsencode(base + name))
            if os.path.isdir(os.path.join(target.path, name)):
                link += "/"
            label = name.encode("utf-8", "surrogateescape").decode("utf-8", "replace")
            parts.append(f"<p><a href='{escape(link)}'>{escape(label)}</a></p>")

        return ResponseBuilder().html("".join(parts)).build()

    def _redirect_with_slash(self, request: HTTPRequest) -> HTTPResponse:
        # Raw (still percent-encoded) path so the client gets back what it sent
        raw_path = request.origin_form.partition("?")[0] or request.path
        location = raw_path + "/"
        if request.query_string:
            location += "?" + request.query_string

        link = escape(location)
        return (ResponseBuilder()
            .redirect(location, permanent=True)
            .html(f"Redirecting to <a href='{link}'>{link}</a>")
            .build())

    def _not_found(self, request: HTTPRequest) -> HTTPResponse:
        return (ResponseBuilder()
            .status(HTTPStatus.NOT_FOUND)
            .html(
                "<h1>Not Found</h1>"
                f"<p>The requested URL {escape(request.target)} was not found on this server.</p>"
            )
            .build())


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# resolve() and classify() are pure and cheap to test; StaticFileHandler
# turns their answer into a response. File bodies are FileStream objects,
# optionally wrapped by a CompressedStream, and are only read while the
# connection writes them.
# =============================================================================
