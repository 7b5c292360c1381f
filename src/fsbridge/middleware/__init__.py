"""
=============================================================================
MIDDLEWARE
=============================================================================

Code that runs between the parsed request and the router, in Chain of
Responsibility style. Each middleware may act before and after calling
next(request):

    Incoming Request
         │
         ▼
    ┌───────────────────┐
    │ LoggingMiddleware │ ──► times the request, writes the access line
    └─────────┬─────────┘
              ▼
    ┌───────────────────┐
    │  ErrorMiddleware  │ ──► unexpected exception → logged, 404
    └─────────┬─────────┘
              ▼
    ┌───────────────────┐
    │  Router.handle    │ ──► protocol decode, file read/write
    └─────────┬─────────┘
              │
              ▼
    Response flows back UP through middleware

The wire format allows no extra headers, so middleware may replace a
response but never decorates one.

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .errors import ErrorMiddleware
from .logging import LoggingMiddleware, RequestLog

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "ErrorMiddleware",
    "LoggingMiddleware",
    "RequestLog",
]
