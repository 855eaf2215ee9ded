"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds HTTP/1.1 responses with proper formatting per RFC 7230.

=============================================================================
HTTP RESPONSE ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP RESPONSE STRUCTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │  ┌─ HEAD (head_bytes) ───────────────────────────────────────────┐  │
    │  │    HTTP/1.1 200 OK\r\n                                         │  │
    │  │    Content-Type: text/css\r\n                                  │  │
    │  │    Content-Encoding: gzip\r\n                                  │  │
    │  │    Last-Modified: Wed, 15 Jun 2024 10:00:00 GMT\r\n            │  │
    │  │    \r\n                                                        │  │
    │  └────────────────────────────────────────────────────────────────┘  │
    │                                                                     │
    │  ┌─ BODY ────────────────────────────────────────────────────────┐  │
    │  │    either `body` (bytes, fully known)                          │  │
    │  │    or     `stream` (iterator of byte chunks, length unknown)   │  │
    │  └────────────────────────────────────────────────────────────────┘  │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STREAMED BODIES
=============================================================================

Files and proxied responses are never read into memory. A handler returns
an HTTPResponse whose `stream` yields chunks; the connection writes the head
first, then each chunk as it is produced. Once the head is on the wire the
status and headers can no longer change, so everything the client needs to
interpret the body (Content-Encoding, Content-Type) is set BEFORE the handler
returns.

    Handler                    Connection
    ───────                    ──────────
    HTTPResponse(              sendall(head_bytes())
      headers={...},   ─────►  for chunk in stream:
      stream=gen                   sendall(frame(chunk))
    )                          stream.close()

If the client goes away mid-body, the connection calls close() on the
response, which closes the stream and releases the file handle or
upstream connection held inside it.

=============================================================================
REPEATED HEADERS
=============================================================================

A header value may be a list. Each element becomes its own header line:

    headers = {"Set-Cookie": ["a=1", "b=2"]}
        ↓
    Set-Cookie: a=1\r\n
    Set-Cookie: b=2\r\n

Proxied responses depend on this; Set-Cookie cannot be comma-joined.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Union
import logging

from .status_codes import HTTPStatus, reason_phrase, status_has_body

logger = logging.getLogger(__name__)

HeaderValue = Union[str, List[str]]


@dataclass
class HTTPResponse:
    """
    Represents an HTTP response to be sent to the client.

    `status` is a plain int so upstream codes unknown to HTTPStatus can be
    relayed unchanged; `reason` defaults to the standard phrase.
    """

    status: int = HTTPStatus.OK
    headers: Dict[str, HeaderValue] = field(default_factory=dict)
    body: bytes = b""
    stream: Optional[Iterator[bytes]] = None
    reason: str = ""
    version: str = "HTTP/1.1"

    def __post_init__(self):
        if not self.reason:
            self.reason = reason_phrase(int(self.status))

    @property
    def status_line(self) -> str:
        """
        Format: HTTP-VERSION SP STATUS-CODE SP REASON-PHRASE
        Example: "HTTP/1.1 200 OK"
        """
        return f"{self.version} {int(self.status)} {self.reason}"

    @property
    def has_body(self) -> bool:
        """False for 1xx, 204 and 304: those never carry a message body."""
        return status_has_body(int(self.status))

    # ─────────────────────────────────────────────────────────────────────
    # Header access (names are case-insensitive on lookup)
    # ─────────────────────────────────────────────────────────────────────

    def _find(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key in self.headers:
            if key.lower() == lowered:
                return key
        return None

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        key = self._find(name)
        if key is None:
            return default
        value = self.headers[key]
        if isinstance(value, list):
            return ", ".join(value)
        return value

    def has_header(self, name: str) -> bool:
        return self._find(name) is not None

    def set_header(self, name: str, value: HeaderValue) -> "HTTPResponse":
        """Set a header, replacing any existing one regardless of case."""
        key = self._find(name)
        if key is not None:
            del self.headers[key]
        self.headers[name] = value
        return self

    def add_header(self, name: str, value: str) -> "HTTPResponse":
        """Append a header line, keeping any previous values."""
        key = self._find(name)
        if key is None:
            self.headers[name] = value
            return self
        existing = self.headers[key]
        if isinstance(existing, list):
            existing.append(value)
        else:
            self.headers[key] = [existing, value]
        return self

    def remove_header(self, name: str) -> None:
        key = self._find(name)
        if key is not None:
            del self.headers[key]

    # ─────────────────────────────────────────────────────────────────────
    # Serialization
    # ─────────────────────────────────────────────────────────────────────

    def head_bytes(self, server_name: str = "staticserver") -> bytes:
        """
        Serialize the status line and headers (including the blank line).

        =====================================================================
        AUTO-ADDED HEADERS
        =====================================================================

            Content-Length  only for a buffered body on a status that may
                            have one (never on 1xx/204/304)
            Date            RFC 7231 requires origin servers to send it
            Server          identifies the software

        Framing for streamed bodies (Transfer-Encoding or Connection: close)
        is decided by the connection, which knows the client's version.

        =====================================================================
        """
        if (
            self.stream is None
            and self.has_body
            and not self.has_header("Content-Length")
        ):
            self.headers["Content-Length"] = str(len(self.body))

        if not self.has_header("Date"):
            self.headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if not self.has_header("Server"):
            self.headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in self.headers.items():
            values = value if isinstance(value, list) else [value]
            for item in values:
                lines.append(f"{name}: {item}")
        lines.append("")

        # latin-1 keeps relayed header bytes intact (see request.py)
        return "\r\n".join(lines).encode("latin-1", errors="replace") + b"\r\n"

    def to_bytes(self, server_name: str = "staticserver") -> bytes:
        """
        Serialize a buffered response in one piece.

        Streamed responses cannot be serialized this way; the connection
        writes them chunk by chunk.
        """
        if self.stream is not None:
            raise ValueError("streamed response has no single byte form")
        head = self.head_bytes(server_name)
        if not self.has_body:
            return head
        return head + self.body

    def close(self) -> None:
        """Release whatever the body stream holds (file, upstream socket)."""
        if self.stream is None:
            return
        close = getattr(self.stream, "close", None)
        if close is not None:
            try:
                close()
            except Exception as e:
                logger.warning(f"Error closing response stream: {e}")
        self.stream = None


class ResponseBuilder:
    """
    Fluent builder for constructing HTTP responses.

    Each method returns `self`, enabling chaining:

        response = (ResponseBuilder()
            .status(HTTPStatus.NOT_FOUND)
            .html("<h1>Not Found</h1>")
            .build())
    """

    def __init__(self):
        self._status: int = HTTPStatus.OK
        self._reason: str = ""
        self._headers: Dict[str, HeaderValue] = {}
        self._body: bytes = b""
        self._stream: Optional[Iterator[bytes]] = None

    # =========================================================================
    # STATUS METHODS
    # =========================================================================

    def status(self, status: int, reason: str = "") -> "ResponseBuilder":
        self._status = status
        self._reason = reason
        return self

    # =========================================================================
    # HEADER METHODS
    # =========================================================================

    def header(self, name: str, value: HeaderValue) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, HeaderValue]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    # =========================================================================
    # BODY METHODS
    # =========================================================================

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Set the response body (strings are encoded to UTF-8)."""
        if isinstance(body, str):
            self._body = body.encode("utf-8")
        else:
            self._body = body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def html(self, html: str) -> "ResponseBuilder":
        self._body = html.encode("utf-8")
        self._headers["Content-Type"] = "text/html; charset=utf-8"
        return self

    def stream(self, chunks: Iterator[bytes]) -> "ResponseBuilder":
        """
        Use an iterator of byte chunks as the body.

        No Content-Length is added for a stream; set one explicitly with
        header() when the length is known up front (uncompressed files).
        """
        self._stream = chunks
        return self

    # =========================================================================
    # REDIRECT METHODS
    # =========================================================================

    def redirect(self, location: str, permanent: bool = False) -> "ResponseBuilder":
        """
        301 Moved Permanently: browsers and caches remember the new URL.
        302 Found:             temporary, the old URL stays canonical.
        """
        self._status = HTTPStatus.MOVED_PERMANENTLY if permanent else HTTPStatus.FOUND
        self._headers["Location"] = location
        return self

    # =========================================================================
    # BUILD
    # =========================================================================

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
            stream=self._stream,
            reason=self._reason,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231, the RFC 1123 form).

    Format: Day, DD Mon YYYY HH:MM:SS GMT
    Example: Wed, 01 Jan 2026 12:00:00 GMT

    HTTP dates are ALWAYS in GMT. Aware datetimes are converted; naive
    ones are taken to be UTC already.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)

    # Fixed English names; strftime("%a") would follow the process locale
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def format_timestamp(timestamp: float) -> str:
    """HTTP-date for a POSIX timestamp (e.g. st_mtime)."""
    return format_http_date(datetime.fromtimestamp(timestamp, tz=timezone.utc))


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def text_response(status: int, message: str) -> HTTPResponse:
    """Plain-text response, used for 500s carrying raw error text."""
    return ResponseBuilder().status(status).text(message).build()


def error_response(status: int, message: Optional[str] = None) -> HTTPResponse:
    """
    Plain-text error for wire-level failures (400, 405, 413, 501, 505, 503).

    The connection is closed after these, so Connection: close is set here.
    """
    phrase = reason_phrase(int(status))
    return (ResponseBuilder()
        .status(status)
        .text(message or phrase)
        .header("Connection", "close")
        .build())


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    return text_response(HTTPStatus.INTERNAL_SERVER_ERROR, message)
