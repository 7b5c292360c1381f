"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

Middleware wraps the router with cross-cutting behaviour (access logging,
turning unexpected exceptions into 404s) without the router knowing.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       REQUEST FLOW                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Request ──────────────────────────────────────────────►           │
    │                                                                      │
    │   ┌──────────────┐    ┌──────────────┐    ┌──────────────┐          │
    │   │   Logging    │───►│    Error     │───►│    Router    │          │
    │   │      MW      │    │      MW      │    │   .handle    │          │
    │   └──────────────┘    └──────────────┘    └──────────────┘          │
    │    start timer         catch anything      read / write             │
    │    log access line     → 404                                        │
    │                                                                      │
    │   ◄────────────────────────────────────────────── Response          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The first middleware added is the outermost layer.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# The next middleware or the final handler: request in, response out.
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware.

    Subclasses implement:

        def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse

    and must call next(request) unless they answer the request themselves.
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process the request.

        Args:
            request: The parsed request.
            next: The next handler in the chain.

        Returns:
            The response, from next() or produced here.
        """

    @property
    def name(self) -> str:
        """Middleware name for logging."""
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware around a final handler.

    Usage:
        pipeline = MiddlewarePipeline()
        pipeline.add(LoggingMiddleware()).add(ErrorMiddleware())
        handler = pipeline.wrap(router.handle)
        response = handler(request)
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append middleware; returns self for chaining."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Wrap handler with every middleware in the pipeline.

        Given [MW1, MW2] the result calls MW1 → MW2 → handler, so the
        wrapping happens in reverse order.
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
