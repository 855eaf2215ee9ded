"""
=============================================================================
HTTP PROTOCOL IMPLEMENTATION
=============================================================================

The HTTP/1.1 pieces the static server is built from. Nothing here touches
sockets or the filesystem; these modules turn bytes into objects and back,
and make the per-response decisions that depend only on headers.

=============================================================================
MODULE COMPONENTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py       bytes → HTTPRequest (method, target, path, ...)    │
    │ response.py      HTTPResponse / ResponseBuilder → head + body bytes │
    │ status_codes.py  HTTPStatus enum, reason phrases, has_body rules    │
    │ mime_types.py    file extension → Content-Type                      │
    │ compression.py   Accept-Encoding → gzip / deflate / identity stream │
    │ freshness.py     Last-Modified, Expires, If-Modified-Since → 304    │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    format_http_date,
    text_response,
    error_response,
    internal_error,
)
from .status_codes import HTTPStatus, reason_phrase
from .mime_types import lookup as lookup_mime_type
from .compression import negotiate
from .freshness import is_fresh, set_fresh_headers

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "format_http_date",
    "text_response",
    "error_response",
    "internal_error",

    # Status codes
    "HTTPStatus",
    "reason_phrase",

    # Per-response decisions
    "lookup_mime_type",
    "negotiate",
    "is_fresh",
    "set_fresh_headers",
]
