"""
=============================================================================
OPERATION ROUTER
=============================================================================

Maps a parsed request to one of the two filesystem operations and turns the
outcome into a response.

    HTTPRequest
        │
        ▼
    protocol.decode()  ──── ProtocolError ──────────────┐
        │                                               │
        ▼                                               │
    FileOperation                                       │
        │                                               │
        ├── READ  ─► store.read()  ── OSError ──────────┤
        │               │                               │
        │               ▼                               ▼
        │          200 + Content-Length + bytes    404 NOT FOUND
        │                                               ▲
        └── WRITE ─► store.write() ── OSError ──────────┘
                        │
                        ▼
                     200 (no body)

Clients only ever see 200 or 404. The reason for a 404 (the OS error, the
envelope problem, the unsupported method) is logged here and never sent
back over the wire.

=============================================================================
"""

import logging

from .protocol import Protocol, FileOperation, OperationKind, ProtocolError
from .request import HTTPRequest
from .response import HTTPResponse, ok, not_found
from ..handlers.files import FileStore, PathOutsideRootError


logger = logging.getLogger(__name__)


class Router:
    """
    Dispatches requests to the file store through a single protocol.

    Usage:
        router = Router(PathProtocol(), FileStore("/"))
        response = router.handle(request)
    """

    def __init__(self, protocol: Protocol, store: FileStore):
        self.protocol = protocol
        self.store = store

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Route one request.

        Never raises for expected failures: protocol and filesystem errors
        are logged and answered with 404.
        """
        client = _format_client(request)

        try:
            operation = self.protocol.decode(request)
        except ProtocolError as e:
            logger.error(f"Unsupported request from client {client}: {e} - {request!r}")
            return not_found()

        if operation.kind is OperationKind.READ:
            return self._read(operation, request, client)
        return self._write(operation, request, client)

    def _read(self, operation: FileOperation, request: HTTPRequest, client: str) -> HTTPResponse:
        try:
            data = self.store.read(operation.path)
        except PathOutsideRootError as e:
            logger.warning(f"Rejected {request.method} from client {client}: {e}")
            return not_found()
        except OSError as e:
            logger.error(f"Failed to handle {request.method} request from client {client}: {e}")
            return not_found()
        return ok(data)

    def _write(self, operation: FileOperation, request: HTTPRequest, client: str) -> HTTPResponse:
        try:
            self.store.write(
                operation.path,
                operation.data or b"",
                create_parents=operation.create_parents,
            )
        except PathOutsideRootError as e:
            logger.warning(f"Rejected {request.method} from client {client}: {e}")
            return not_found()
        except OSError as e:
            logger.error(
                f"Failed to write data for {request.method} request from client {client}: {e}"
            )
            return not_found()
        return ok()


def _format_client(request: HTTPRequest) -> str:
    host, port = request.client_address[:2]
    return f"{host}:{port}"
