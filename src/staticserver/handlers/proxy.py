"""
=============================================================================
REVERSE PROXY PASSTHROUGH
=============================================================================

Forwards a request to one upstream HTTP service and relays the answer.

    Browser                 staticserver                 Upstream
       │  GET /api/users?x=1     │                            │
       │ ──────────────────────► │  GET <target>/api/users?x=1│
       │                         │ ─────────────────────────► │
       │                         │      200 OK + body         │
       │      200 OK + body      │ ◄───────────────────────── │
       │ ◄────────────────────── │                            │

=============================================================================
WHAT IS FORWARDED
=============================================================================

    Request:   method, raw target (path + query), end-to-end headers
               (Host included, unchanged), body
    Response:  status code, reason phrase, end-to-end headers (repeats
               kept), body bytes exactly as received

The body is neither decoded nor re-encoded: a gzip'd upstream body reaches
the client gzip'd, with the upstream's Content-Encoding header.

=============================================================================
HOP-BY-HOP HEADERS
=============================================================================

Some headers describe a single connection, not the message (RFC 7230 §6.1).
They are dropped in both directions:

    Connection, Keep-Alive, Transfer-Encoding, TE, Trailer, Upgrade,
    Proxy-Authenticate, Proxy-Authorization, Proxy-Connection
    + any header named in the Connection header itself

The upstream's chunked framing is removed by urllib3 while reading and the
connection to the client re-frames the body as it sees fit.

=============================================================================
FAILURES
=============================================================================

One attempt, no retries, no timeout beyond the OS defaults. If the upstream
cannot be reached, or fails before sending a status line, the client gets:

    HTTP/1.1 500 Internal Server Error
    Content-Type: text/plain; charset=utf-8

    ERR: proxy request to http://127.0.0.1/api/users failed: <reason>

Once the head has been relayed, an upstream failure can only cut the body
short; the connection logs it and closes.

=============================================================================
"""

from typing import Dict, Iterable, List, Set, Tuple
import logging

import requests

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, text_response
from ..http.status_codes import HTTPStatus

logger = logging.getLogger(__name__)

HOP_BY_HOP_HEADERS: Set[str] = {
    "connection",
    "keep-alive",
    "transfer-encoding",
    "te",
    "trailer",
    "trailers",
    "upgrade",
    "proxy-authenticate",
    "proxy-authorization",
    "proxy-connection",
}

DEFAULT_CHUNK_SIZE = 64 * 1024


def _connection_tokens(values: Iterable[str]) -> Set[str]:
    """Header names listed in Connection header values."""
    tokens = set()
    for value in values:
        for token in value.split(","):
            token = token.strip().lower()
            if token:
                tokens.add(token)
    return tokens


def filter_hop_by_hop(items: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """
    Drop hop-by-hop headers from (name, value) pairs, keeping order.

        >>> filter_hop_by_hop([("Connection", "close, X-Trace"), ("X-Trace", "1"), ("Accept", "*/*")])
        [('Accept', '*/*')]
    """
    items = list(items)
    drop = HOP_BY_HOP_HEADERS | _connection_tokens(
        value for name, value in items if name.lower() == "connection"
    )
    return [(name, value) for name, value in items if name.lower() not in drop]


class UpstreamStream:
    """
    Raw body chunks of an upstream response.

    Owns the requests session and response; close() releases both, whether
    the body was fully read, partially read or not read at all.
    """

    def __init__(
        self,
        session: requests.Session,
        upstream: requests.Response,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.session = session
        self.upstream = upstream
        self._chunks = upstream.raw.stream(chunk_size, decode_content=False)
        self._closed = False

    def __iter__(self) -> "UpstreamStream":
        return self

    def __next__(self) -> bytes:
        if self._closed:
            raise StopIteration
        try:
            return next(self._chunks)
        except StopIteration:
            self.close()
            raise

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._chunks.close()
        self.upstream.close()
        self.session.close()


class ReverseProxy:
    """
    Passthrough to a single upstream base URL.

    Usage:
        proxy = ReverseProxy("http://127.0.0.1:8080")
        response = proxy.forward(request)
    """

    def __init__(self, target: str = "http://127.0.0.1", chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.target = target.rstrip("/")
        self.chunk_size = chunk_size

    def upstream_url(self, request: HTTPRequest) -> str:
        """Base URL + path and query exactly as the client sent them."""
        return self.target + request.origin_form

    def _session(self) -> requests.Session:
        session = requests.Session()
        # Only the client's own headers go upstream
        session.headers.clear()
        # Ignore HTTP_PROXY and friends from the environment
        session.trust_env = False
        return session

    def _request_headers(self, request: HTTPRequest) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        for name, value in filter_hop_by_hop(request.header_items):
            existing = headers.get(name)
            headers[name] = f"{existing}, {value}" if existing is not None else value
        return headers

    def forward(self, request: HTTPRequest) -> HTTPResponse:
        url = self.upstream_url(request)
        session = self._session()

        try:
            upstream = session.request(
                request.method,
                url,
                headers=self._request_headers(request),
                data=request.body or None,
                stream=True,
                allow_redirects=False,
            )
        except requests.RequestException as e:
            session.close()
            logger.error(f"Proxy error for {request.method} {url}: {e}")
            return text_response(
                HTTPStatus.INTERNAL_SERVER_ERROR,
                f"ERR: proxy request to {url} failed: {e}",
            )

        logger.debug(f"Proxy {request.method} {url} → {upstream.status_code}")
        return self._relay(session, upstream)

    def _relay(self, session: requests.Session, upstream: requests.Response) -> HTTPResponse:
        response = HTTPResponse(
            status=upstream.status_code,
            reason=upstream.reason or "",
        )
        for name, value in filter_hop_by_hop(upstream.raw.headers.iteritems()):
            response.add_header(name, value)

        response.stream = UpstreamStream(session, upstream, self.chunk_size)
        return response

    __call__ = forward
