"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

Emits one access line per handled request, with timing, on the
"fsbridge.access" logger.

    TEXT FORMAT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 127.0.0.1 - - [17/Oct/2026:10:55:36 +0000] "GET /a" 200 0 5 0.31ms  │
    │ ─────────────────────────────────────────────────────────────────── │
    │ IP          Timestamp               Method/Path Status In Out Time  │
    └─────────────────────────────────────────────────────────────────────┘

    JSON FORMAT:
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"request_id": "a1b2c3d4", "method": "POST", "path": "/tmp/a",      │
    │  "client_ip": "127.0.0.1", "status_code": 200, "bytes_in": 5,       │
    │  "content_length": 0, "duration_ms": 0.42,                          │
    │  "timestamp": "17/Oct/2026:10:55:36 +0000"}                        │
    └─────────────────────────────────────────────────────────────────────┘

bytes_in is the size of the request body, content_length the size of the
response body. Writes log their payload size in, failures log 0 out. File
contents are never logged.

The request ID lives only in the log. Responses carry no headers beyond
Content-Length, so it is not echoed to the client.

=============================================================================
"""

import time
import json
import uuid
import logging
from dataclasses import dataclass

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


# Separate from the module loggers so access lines can be routed or
# silenced on their own:
#   logging.getLogger("fsbridge.access").setLevel(logging.WARNING)
logger = logging.getLogger("fsbridge.access")


@dataclass
class RequestLog:
    """Structured access log entry for one request."""

    request_id: str
    method: str
    path: str
    client_ip: str
    status_code: int
    bytes_in: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "method": self.method,
            "path": self.path,
            "client_ip": self.client_ip,
            "status_code": self.status_code,
            "bytes_in": self.bytes_in,
            "content_length": self.content_length,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        """Apache-style single line."""
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.bytes_in} {self.content_length} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Request timing and access logging.

    Should be FIRST in the pipeline so the timing covers everything below
    it, including the error middleware.

    Usage:
        pipeline.add(LoggingMiddleware(log_format="json"))
    """

    FORMATS = ("text", "json")

    def __init__(self, log_format: str = "text", log_level: int = logging.INFO):
        """
        Args:
            log_format: "text" (Apache style) or "json".
            log_level: Level the access lines are emitted at.
        """
        if log_format not in self.FORMATS:
            raise ValueError(f"Unknown log format: {log_format!r}")
        self.log_format = log_format
        self.log_level = log_level

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = str(uuid.uuid4())[:8]
        start_time = time.perf_counter()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000

        log_entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            client_ip=request.client_address[0],
            status_code=int(response.status),
            bytes_in=len(request.body),
            content_length=response.content_length,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(log_entry.to_dict()))
        else:
            logger.log(self.log_level, log_entry.to_text())

        return response
