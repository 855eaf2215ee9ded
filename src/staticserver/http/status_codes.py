"""
=============================================================================
HTTP STATUS CODES (RFC 7231)
=============================================================================

Status codes the static server produces itself, with their reason phrases.

=============================================================================
WHICH CODES DOES A STATIC SERVER NEED?
=============================================================================

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  200   │ File body or directory listing                            │
    │  301   │ Directory requested without a trailing slash              │
    │  304   │ Client's cached copy is still the current one             │
    │  400   │ Request line or headers could not be parsed               │
    │  404   │ Nothing on disk at the requested path                     │
    │  405   │ Unknown request method                                    │
    │  408   │ Client connected but never finished its request           │
    │  413   │ Request larger than max_request_size                      │
    │  500   │ Filesystem failure, or the proxy upstream is unreachable  │
    │  501   │ Request body in a transfer coding other than chunked      │
    │  503   │ Worker pool queue is full                                 │
    │  505   │ HTTP version other than 1.0 / 1.1                         │
    └────────┴───────────────────────────────────────────────────────────┘

Proxied responses can carry ANY status the upstream chose (e.g. 418 or a
private 299). Those are relayed as plain integers; reason_phrase() falls
back to the upstream's own phrase or "Unknown".

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so members compare equal to plain integers:

        >>> HTTPStatus.NOT_MODIFIED == 304
        True
        >>> HTTPStatus.NOT_MODIFIED.phrase
        'Not Modified'
    """

    # 2xx SUCCESS
    OK = 200
    NO_CONTENT = 204

    # 3xx REDIRECTION
    MOVED_PERMANENTLY = 301
    FOUND = 302
    NOT_MODIFIED = 304

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    PAYLOAD_TOO_LARGE = 413

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """
        Reason phrase for the status line.

            HTTP/1.1 304 Not Modified
                     ─── ────────────
                      │       └── phrase
                      └────────── code
        """
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def has_body(self) -> bool:
        """
        Whether a response with this status may carry a message body.

        RFC 7230 §3.3.3: 1xx, 204 and 304 responses never have one, so they
        get neither Content-Length nor Transfer-Encoding.
        """
        return status_has_body(int(self))


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.FOUND: "Found",
    HTTPStatus.NOT_MODIFIED: "Not Modified",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
    HTTPStatus.BAD_GATEWAY: "Bad Gateway",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}


def reason_phrase(code: int) -> str:
    """Reason phrase for any integer status, known to this module or not."""
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return "Unknown"


def status_has_body(code: int) -> bool:
    """has_body for arbitrary integers (relayed upstream statuses)."""
    return not (100 <= code < 200 or code in (204, 304))
