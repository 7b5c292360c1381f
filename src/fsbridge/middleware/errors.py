"""
Error middleware: the last line before the router.

Any exception escaping the router or an inner middleware is logged with
its traceback and answered with a 404, the same response every expected
failure gets. The client never sees a dropped connection because of a
handler bug.
"""

import logging

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, not_found


logger = logging.getLogger(__name__)


class ErrorMiddleware(Middleware):
    """Turns unexpected exceptions into 404 responses."""

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        try:
            return next(request)
        except Exception:
            logger.exception(
                f"Unhandled error for {request.method} {request.path} "
                f"from {request.client_address[0]}"
            )
            return not_found()
