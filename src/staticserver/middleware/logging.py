"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

One log line per request, on the "staticserver.access" logger:

    127.0.0.1 - - [19/Oct/2026:10:00:00 +0000] "GET /app.css" 200 - 0.41ms
    127.0.0.1 - - [19/Oct/2026:10:00:01 +0000] "GET /api/users" 200 512 3.07ms

The size column is the Content-Length of the response, or "-" when the body
is streamed with no known length (compressed files, chunked upstream
bodies). Duration covers producing the response head; streaming the body
happens afterwards, on the connection.

Route it separately if you want an access log file:

    logging.getLogger("staticserver.access").addHandler(file_handler)

=============================================================================
"""

import time
import json
import uuid
import logging
from typing import Optional
from dataclasses import dataclass

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse

logger = logging.getLogger("staticserver.access")


@dataclass
class RequestLog:
    """Structured log entry for a request."""

    request_id: str
    method: str
    target: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: Optional[int]
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "method": self.method,
            "target": self.target,
            "client_ip": self.client_ip,
            "user_agent": self.user_agent,
            "status_code": self.status_code,
            "content_length": self.content_length,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        """Apache-style common log line plus duration."""
        size = "-" if self.content_length is None else str(self.content_length)
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.target}" {self.status_code} '
            f'{size} {self.duration_ms:.2f}ms'
        )


def _content_length(response: HTTPResponse) -> Optional[int]:
    value = response.get_header("Content-Length")
    if value is not None:
        try:
            return int(value)
        except ValueError:
            return None
    if response.stream is None:
        return len(response.body)
    return None


class LoggingMiddleware(Middleware):
    """
    Request logging middleware.

    Args:
        log_format: "text" (Apache-style) or "json".
        include_request_id: Add an X-Request-ID header to every response.
            Off by default so proxied responses reach the client unchanged.
        log_level: Level used for access lines.
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = False,
        log_level: int = logging.INFO,
    ):
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.target} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        log_entry = RequestLog(
            request_id=request_id,
            method=request.method,
            target=request.target,
            client_ip=request.client_address[0] or "-",
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            content_length=_content_length(response),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(log_entry.to_dict()))
        else:
            logger.log(self.log_level, log_entry.to_text())

        if self.include_request_id:
            response.set_header("X-Request-ID", request_id)

        return response
