"""
=============================================================================
MIDDLEWARE
=============================================================================

Request/response wrappers around the router (Chain of Responsibility):
each one can act before the handler, call next(request), and act on the
response on the way back.

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import LoggingMiddleware, RequestLog

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "LoggingMiddleware",
    "RequestLog",
]
