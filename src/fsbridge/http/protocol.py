"""
=============================================================================
WIRE PROTOCOLS
=============================================================================

A protocol turns a parsed HTTPRequest into a FileOperation. A server runs
exactly ONE protocol, chosen at startup; requests in the other shape are
simply unroutable and get a 404.

=============================================================================
PATH-ADDRESSED  (protocol="path", version path/1, canonical)
=============================================================================

The request target names the file:

    GET /tmp/a/b.txt HTTP/1.1\r\n\r\n              → READ  /tmp/a/b.txt
    POST /tmp/a/b.txt HTTP/1.1\r\n
    Content-Length: 5\r\n\r\nhello                 → WRITE /tmp/a/b.txt
                                                     (parents created)

Any body sent with GET is ignored. Any other method is unsupported.

=============================================================================
ENVELOPE-ADDRESSED  (protocol="envelope", version envelope/1)
=============================================================================

The body carries a JSON envelope; the request target is ignored:

    POST / HTTP/1.1\r\n
    Content-Length: 52\r\n\r\n
    {"kind": "setFileData", "path": "/tmp/x", "data": [104, 105]}

    kind         "getFileData" → READ, "setFileData" → WRITE
    path         string, required
    data         list of integers 0-255, required for setFileData,
                 null or absent for getFileData

When "kind" is absent the method decides: GET reads, POST writes. Parent
directories are never created in this shape.

=============================================================================
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .request import HTTPRequest


class ProtocolError(Exception):
    """The request cannot be mapped to a file operation."""


class UnsupportedRequestError(ProtocolError):
    """Method (or envelope kind) the protocol does not handle."""


class EnvelopeDecodeError(ProtocolError):
    """Envelope body is not valid UTF-8 JSON matching the schema."""


class OperationKind(Enum):
    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class FileOperation:
    """
    A decoded instruction for the file store.

    Attributes:
        kind:           READ or WRITE.
        path:           Client path, resolved later by the FileStore.
        data:           Bytes to write (WRITE only).
        create_parents: Create intermediate directories before writing.
    """

    kind: OperationKind
    path: str
    data: Optional[bytes] = None
    create_parents: bool = False

    @classmethod
    def read(cls, path: str) -> "FileOperation":
        return cls(OperationKind.READ, path)

    @classmethod
    def write(cls, path: str, data: bytes, create_parents: bool = False) -> "FileOperation":
        return cls(OperationKind.WRITE, path, data, create_parents)


class Protocol:
    """Base class: decode(request) -> FileOperation or raise ProtocolError."""

    name = ""
    version = ""

    def decode(self, request: HTTPRequest) -> FileOperation:
        raise NotImplementedError

    def __str__(self) -> str:
        return f"{self.name}/{self.version}"


class PathProtocol(Protocol):
    """Target path names the file; POST bodies are raw file bytes."""

    name = "path"
    version = "1"

    def decode(self, request: HTTPRequest) -> FileOperation:
        if request.method == "GET":
            return FileOperation.read(request.path)
        if request.method == "POST":
            return FileOperation.write(request.path, request.body, create_parents=True)
        raise UnsupportedRequestError(f"Unsupported method: {request.method}")


class EnvelopeProtocol(Protocol):
    """JSON envelope in the body names the operation, path and data."""

    name = "envelope"
    version = "1"

    KINDS = {
        "getFileData": OperationKind.READ,
        "setFileData": OperationKind.WRITE,
    }
    METHOD_KINDS = {
        "GET": OperationKind.READ,
        "POST": OperationKind.WRITE,
    }

    def decode(self, request: HTTPRequest) -> FileOperation:
        if request.method not in self.METHOD_KINDS:
            raise UnsupportedRequestError(f"Unsupported method: {request.method}")

        envelope = self._load(request.body)

        kind_name = envelope.get("kind")
        if kind_name is None:
            kind = self.METHOD_KINDS[request.method]
        elif kind_name in self.KINDS:
            kind = self.KINDS[kind_name]
        else:
            raise UnsupportedRequestError(f"Unsupported envelope kind: {kind_name!r}")

        path = envelope.get("path")
        if not isinstance(path, str):
            raise EnvelopeDecodeError("Envelope field 'path' must be a string")

        if kind is OperationKind.READ:
            return FileOperation.read(path)

        data = envelope.get("data")
        if data is None:
            raise EnvelopeDecodeError("Envelope field 'data' is required for writes")
        return FileOperation.write(path, self._to_bytes(data))

    def _load(self, body: bytes) -> dict:
        try:
            envelope = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise EnvelopeDecodeError(f"Invalid envelope JSON: {e}")
        if not isinstance(envelope, dict):
            raise EnvelopeDecodeError("Envelope must be a JSON object")
        return envelope

    def _to_bytes(self, data: Any) -> bytes:
        if not isinstance(data, list):
            raise EnvelopeDecodeError("Envelope field 'data' must be a list of bytes")
        # bool is an int subclass; true/false are not bytes
        if not all(type(b) is int and 0 <= b <= 255 for b in data):
            raise EnvelopeDecodeError("Envelope field 'data' must contain integers 0-255")
        return bytes(data)


PROTOCOLS = {
    PathProtocol.name: PathProtocol,
    EnvelopeProtocol.name: EnvelopeProtocol,
}


def get_protocol(name: str) -> Protocol:
    """Instantiate the protocol registered under name ("path" or "envelope")."""
    try:
        return PROTOCOLS[name]()
    except KeyError:
        raise ValueError(f"Unknown protocol: {name!r}")


def encode_envelope(kind: str, path: str, data: Optional[bytes] = None) -> bytes:
    """Build an envelope body, e.g. for clients and tests."""
    payload = {
        "kind": kind,
        "path": path,
        "data": list(data) if data is not None else None,
    }
    return json.dumps(payload).encode("utf-8")
