"""
=============================================================================
REQUEST / RESPONSE LAYER
=============================================================================

Everything between "bytes arrived" and "bytes to send":

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py       raw bytes → HTTPRequest                            │
    │ protocol.py      HTTPRequest → FileOperation (path or envelope)     │
    │ router.py        FileOperation → FileStore → HTTPResponse           │
    │ response.py      HTTPResponse → raw bytes                           │
    │ status_codes.py  200 OK and 404 NOT FOUND                           │
    └─────────────────────────────────────────────────────────────────────┘

Only the subset of HTTP/1.x needed to locate and size a request body is
implemented. There is no keep-alive, no chunked encoding, and no response
header other than Content-Length.

=============================================================================
"""

from .request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    find_header_end,
    parse_content_length,
    parse_headers,
    split_header_block,
    parse_request,
)
from .response import HTTPResponse, ok, not_found
from .protocol import (
    Protocol,
    PathProtocol,
    EnvelopeProtocol,
    ProtocolError,
    UnsupportedRequestError,
    EnvelopeDecodeError,
    FileOperation,
    OperationKind,
    get_protocol,
    encode_envelope,
)
from .router import Router
from .status_codes import HTTPStatus

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "find_header_end",
    "parse_content_length",
    "parse_headers",
    "split_header_block",
    "parse_request",

    # Responses
    "HTTPResponse",
    "ok",
    "not_found",

    # Protocols
    "Protocol",
    "PathProtocol",
    "EnvelopeProtocol",
    "ProtocolError",
    "UnsupportedRequestError",
    "EnvelopeDecodeError",
    "FileOperation",
    "OperationKind",
    "get_protocol",
    "encode_envelope",

    # Routing
    "Router",

    # Status codes
    "HTTPStatus",
]
