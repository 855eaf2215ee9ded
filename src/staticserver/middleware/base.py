"""
=============================================================================
MIDDLEWARE BASE
=============================================================================

Middleware wraps the router so cross-cutting work (access logging) happens
around every request, proxied or local, without touching the handlers.

    ┌─────────────────────────────────────────────────────────┐
    │  LoggingMiddleware                                      │
    │  ┌───────────────────────────────────────────────────┐  │
    │  │                                                   │  │
    │  │              Router.handle                        │  │
    │  │       (ReverseProxy or StaticFileHandler)         │  │
    │  │                                                   │  │
    │  └───────────────────────────────────────────────────┘  │
    └─────────────────────────────────────────────────────────┘

Request flows inward, response flows outward. First added = outermost.

Note that a streamed body has not been read yet when the response passes
back through middleware; only the head is final at that point.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse

logger = logging.getLogger(__name__)

# The next middleware, or the final handler
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Every middleware implements:

        def __call__(self, request, next) -> HTTPResponse

    and calls next(request) unless it answers the request itself.
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware around a final handler.

        pipeline = MiddlewarePipeline()
        pipeline.add(LoggingMiddleware())
        handler = pipeline.wrap(router.handle)
        response = handler(request)
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Build MW1 → MW2 → ... → handler.

        Wrapping goes in reverse so the first-added middleware ends up
        outermost.
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler
    ) -> NextHandler:
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)
        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)
