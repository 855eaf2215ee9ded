"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.1 request bytes into structured HTTPRequest objects.
Implements the parts of RFC 7230 a file server and passthrough proxy need.

=============================================================================
HTTP REQUEST ANATOMY
=============================================================================

    GET /docs/guide.css?v=3 HTTP/1.1\r\n        ← request line
    Host: localhost:9527\r\n                    ← headers
    Accept-Encoding: gzip, deflate, br\r\n
    If-Modified-Since: Wed, 15 Jun 2024 10:00:00 GMT\r\n
    \r\n                                        ← end of headers
    <body bytes, Content-Length of them>

The request line's second token is the REQUEST-TARGET. We keep it twice:

    target  "/docs/guide.css?v=3"   untouched; its path + query (origin_form)
                                    is used for proxy matching and forwarding
                                    (the upstream sees what the client sent)
    path    "/docs/guide.css"       percent-decoded, used for the filesystem

=============================================================================
PATH TRAVERSAL
=============================================================================

The parser does NOT reject "..". A proxied target may legitimately contain
it, and local paths are normalized and confined to the root directory by
the path resolver (handlers/static.py). The parser's job is syntax only.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple
from urllib.parse import urlsplit, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the HTTP status code to answer with:

        400 Bad Request                - Malformed request syntax
        405 Method Not Allowed         - Unknown method
        413 Payload Too Large          - Request exceeds size limit
        501 Not Implemented            - Transfer coding other than chunked
        505 HTTP Version Not Supported - Unknown HTTP version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    Represents a parsed HTTP request.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method:         GET, HEAD, POST, ...
        path:           Percent-decoded path WITHOUT the query string
        target:         Raw request-target exactly as received
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Header name (lowercase) → value; repeated headers
                        are joined with ", "
        header_items:   (name, value) pairs in wire order and original case,
                        repeats kept. The proxy forwards these.
        body:           Raw request body bytes (Content-Length of them)
        client_address: (ip, port) of the client

    =========================================================================
    """

    method: str
    path: str
    target: str = ""
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    header_items: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b""

    client_address: Tuple[str, int] = ("", 0)

    def __post_init__(self):
        # Requests built by hand (tests, internal redirects) only give a path.
        if not self.target:
            self.target = self.path
        if self.headers and not self.header_items:
            self.header_items = list(self.headers.items())

    @property
    def origin_form(self) -> str:
        """
        The target as path + query, still percent-encoded.

            "/api/users?page=2"                    →  "/api/users?page=2"
            "http://example.com/api/users?page=2"  →  "/api/users?page=2"

        Absolute-form targets (sent to proxies) lose scheme and authority.
        """
        if self.target.startswith("/"):
            return self.target
        parsed = urlsplit(self.target)
        origin = parsed.path or "/"
        if parsed.query:
            origin += "?" + parsed.query
        return origin

    @property
    def query_string(self) -> str:
        """Raw query string without the leading '?' (may be empty)."""
        _, _, query = self.origin_form.partition("?")
        return query

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        Check if this connection should be kept alive.

        HTTP/1.1 keeps alive unless "Connection: close"; HTTP/1.0 closes
        unless "Connection: keep-alive".
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    REQUEST_LINE_PATTERN: ^([A-Z]+) ([^ ]+) (HTTP/\\d\\.\\d)$
        METHOD SP REQUEST-TARGET SP HTTP-VERSION

    HEADER_PATTERN: ^([^:]+):\\s*(.*)$
        field-name ":" OWS field-value
    """

    VALID_METHODS = {
        "GET", "HEAD", "POST", "PUT", "DELETE",
        "PATCH", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: Tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        =====================================================================
        PARSING ALGORITHM
        =====================================================================

        1. Check size limit
        2. Split at \\r\\n\\r\\n into header section and body
        3. Parse request line (first line)
        4. Parse remaining lines as headers
        5. Cut body to Content-Length

        =====================================================================

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        # Header bytes are latin-1 on the wire; decoding that way never fails
        # and round-trips every byte for forwarding.
        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, target, path, version = self._parse_request_line(lines[0])
        headers, header_items = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            target=target,
            version=version,
            headers=headers,
            header_items=header_items,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> Tuple[str, str, str, str]:
        """
        Parse "METHOD SP REQUEST-TARGET SP HTTP-VERSION".

        Returns:
            (method, target, decoded path, version)
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, target, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        # "/a%20b/c.txt?x=1" → path "/a b/c.txt"
        parsed = urlsplit(target)
        path = unquote(parsed.path) or "/"

        return method, target, path, version

    def _parse_headers(
        self,
        lines: List[str]
    ) -> Tuple[Dict[str, str], List[Tuple[str, str]]]:
        """
        Parse header lines.

        - Names are case-insensitive: the dict view is keyed lowercase.
        - Continuation lines (leading SP/HT) extend the previous header.
        - Repeated headers are joined with ", " in the dict view and kept
          separate in the item list.
        """
        headers: Dict[str, str] = {}
        items: List[Tuple[str, str]] = []

        for line in lines:
            if not line:
                continue

            # obs-fold: "X-Long: first\r\n    second"
            if line[0] in (" ", "\t"):
                if items:
                    name, value = items[-1]
                    value = f"{value} {line.strip()}"
                    items[-1] = (name, value)
                    key = name.lower()
                    prior, _, _ = headers[key].rpartition(", ")
                    headers[key] = f"{prior}, {value}" if prior else value
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue  # lenient: skip malformed lines

            name, value = match.groups()
            name = name.strip()
            value = value.strip()
            items.append((name, value))

            key = name.lower()
            if key in headers:
                headers[key] += ", " + value
            else:
                headers[key] = value

        return headers, items


def parse_request(
    data: bytes,
    client_address: Tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024
) -> HTTPRequest:
    """Parse one request with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
