"""
=============================================================================
RESPONSE WRITER
=============================================================================

Serializes the bridge's minimal responses.

=============================================================================
WIRE FORMAT
=============================================================================

    Read succeeded (body present, even if empty):

        HTTP/1.1 200 OK\r\n
        Content-Length: 5\r\n
        \r\n
        hello

    Write succeeded (no body):

        HTTP/1.1 200 OK\r\n

    Anything failed:

        HTTP/1.1 404 NOT FOUND\r\n

No other headers are ever emitted. A body-less response is ONLY the status
line; clients detect its end by the connection closing, since connections
are never kept alive.

=============================================================================
"""

from dataclasses import dataclass
from typing import Optional

from .status_codes import HTTPStatus


@dataclass(frozen=True)
class HTTPResponse:
    """
    A response produced by the router and consumed once by the writer.

    Attributes:
        status: 200 or 404.
        body:   File bytes for reads, None when there is no body at all.
                b"" is a body (Content-Length: 0), None is not.
        version: HTTP version for the status line.
    """

    status: HTTPStatus = HTTPStatus.OK
    body: Optional[bytes] = None
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 404 NOT FOUND"."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def content_length(self) -> int:
        return len(self.body) if self.body is not None else 0

    def to_bytes(self) -> bytes:
        """
        Serialize for a single sendall().

        Returns:
            Status line, plus Content-Length, blank line and body when a
            body is present.
        """
        head = self.status_line + "\r\n"
        if self.body is None:
            return head.encode("ascii")

        head += f"Content-Length: {len(self.body)}\r\n\r\n"
        return head.encode("ascii") + self.body


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def ok(body: Optional[bytes] = None) -> HTTPResponse:
    """200 OK, optionally carrying file bytes."""
    return HTTPResponse(status=HTTPStatus.OK, body=body)


def not_found() -> HTTPResponse:
    """404 NOT FOUND with no body."""
    return HTTPResponse(status=HTTPStatus.NOT_FOUND)
