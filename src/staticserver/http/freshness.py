"""
=============================================================================
FRESHNESS (CONDITIONAL GET)
=============================================================================

Lets browsers revalidate a cached file without downloading it again.

    First visit:
        GET /style.css
        ◄── 200 OK
            Last-Modified: Wed, 15 Jun 2024 10:00:00 GMT
            Cache-Control: public, max-age=3600
            Expires: <now + 3600s>

    Later visit (cache expired):
        GET /style.css
        If-Modified-Since: Wed, 15 Jun 2024 10:00:00 GMT
        ◄── 304 Not Modified    (no body)

=============================================================================
COMPARISON RULE
=============================================================================

The client's If-Modified-Since is compared by EXACT STRING EQUALITY with the
Last-Modified this server would send now. Browsers echo back the value they
were given, so the normal case matches. A date in a different format, or a
date later than the mtime, simply yields a full 200 response. That costs a
transfer, never correctness.

=============================================================================
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from .response import HTTPResponse, format_http_date, format_timestamp


def last_modified(mtime: float) -> str:
    """RFC 1123 rendering of a file's modification time."""
    return format_timestamp(mtime)


def set_fresh_headers(
    response: HTTPResponse,
    mtime: float,
    max_age: int,
    now: Optional[datetime] = None
) -> str:
    """
    Set Cache-Control, Expires and Last-Modified on a file response.

    Always called before the freshness check, so 304s carry them too.

    Returns:
        The Last-Modified value, for passing on to is_fresh().
    """
    now = now or datetime.now(timezone.utc)
    modified = last_modified(mtime)

    response.set_header("Cache-Control", f"public, max-age={max_age}")
    response.set_header("Expires", format_http_date(now + timedelta(seconds=max_age)))
    response.set_header("Last-Modified", modified)
    return modified


def is_fresh(if_modified_since: Optional[str], modified: str) -> bool:
    """
    True iff the request's If-Modified-Since equals Last-Modified exactly.

        >>> is_fresh("Wed, 15 Jun 2024 10:00:00 GMT", "Wed, 15 Jun 2024 10:00:00 GMT")
        True
        >>> is_fresh(None, "Wed, 15 Jun 2024 10:00:00 GMT")
        False
    """
    if not if_modified_since:
        return False
    return if_modified_since == modified
