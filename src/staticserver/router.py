"""
=============================================================================
REQUEST ROUTER
=============================================================================

Decides, per request, between the reverse proxy and the local filesystem.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ROUTING FLOW                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   GET /api/users?page=2                                             │
    │        │                                                            │
    │        ▼                                                            │
    │   re.search(proxy_match, "/api/users?page=2")                       │
    │        │                                                            │
    │        ├── match ──────► ReverseProxy.forward()   (disk untouched)  │
    │        │                                                            │
    │        └── no match ───► StaticFileHandler.handle()                 │
    │                              resolve → classify → respond           │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

The pattern is searched (not anchored) against the request-target in origin
form: path plus query string, still percent-encoded. An absolute-form target
("http://host/api/x") is reduced to "/api/x" first. An empty proxy_match
disables proxying.

=============================================================================
"""

from typing import Callable, Optional
import logging
import re

from .http.request import HTTPRequest
from .http.response import HTTPResponse

logger = logging.getLogger(__name__)

# Type alias: a handler takes a request and returns a response
Handler = Callable[[HTTPRequest], HTTPResponse]


class Router:
    """
    Two-way dispatch: proxy rule first, local files otherwise.

    Args:
        static_handler: Handler for everything not proxied.
        proxy_handler: Handler for matching targets (ReverseProxy.forward).
        proxy_match: Regex searched in the request-target; "" disables.
    """

    def __init__(
        self,
        static_handler: Handler,
        proxy_handler: Optional[Handler] = None,
        proxy_match: str = r"^/api/",
    ):
        self.static_handler = static_handler
        self.proxy_handler = proxy_handler
        self._proxy_pattern = re.compile(proxy_match) if proxy_match and proxy_handler else None

    def is_proxied(self, request: HTTPRequest) -> bool:
        if self._proxy_pattern is None:
            return False
        return self._proxy_pattern.search(request.origin_form) is not None

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        if self.is_proxied(request):
            logger.debug(f"Proxying {request.method} {request.target}")
            return self.proxy_handler(request)
        return self.static_handler(request)

    __call__ = handle
