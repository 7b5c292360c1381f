"""
=============================================================================
REQUEST PARSER
=============================================================================

Parses the bytes buffered for one connection into a structured HTTPRequest.

The bridge only needs a small, permissive subset of HTTP/1.x:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     BRIDGE REQUEST STRUCTURE                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  REQUEST LINE      POST /tmp/a/b.txt HTTP/1.1\r\n                   │
    │                    ─┬── ──────┬───── ────┬───                       │
    │                   Method    Target    Version                        │
    │                                                                      │
    │  HEADERS           Content-Length: 5\r\n      (<= max_headers)      │
    │                                                                      │
    │  SEPARATOR         \r\n                       (\n\n also accepted)  │
    │                                                                      │
    │  BODY              hello                                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Only the request line and Content-Length carry meaning. Every other header
is parsed and kept for diagnostics but never interpreted.

The method is NOT validated here. An unknown method is a routing concern
(the router answers 404); only bytes that cannot be read as a request line
at all are a parse failure (the server drops the connection).

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when the buffered bytes are not a parseable request.

    Parse failures are connection-fatal: the server logs them and closes
    the connection without a response.
    """


def find_header_end(data: bytes) -> Optional[Tuple[int, int]]:
    """
    Locate the blank line that ends the header block.

    Returns:
        (index of the terminator, terminator length), or None if the
        header block is not complete yet. Both CRLFCRLF and a bare LFLF
        are recognised; whichever comes first wins.
    """
    found = []
    for terminator in (b"\r\n\r\n", b"\n\n"):
        index = data.find(terminator)
        if index != -1:
            found.append((index, len(terminator)))
    return min(found) if found else None


def parse_content_length(headers: Dict[str, str]) -> Optional[int]:
    """Content-Length as an int, None when absent. Raises on garbage."""
    value = headers.get("content-length")
    if value is None:
        return None
    # Repeated headers are comma-joined; identical repeats are tolerated.
    values = {v.strip() for v in value.split(",")}
    if len(values) != 1:
        raise HTTPParseError(f"Conflicting Content-Length values: {value}")
    try:
        length = int(values.pop())
    except ValueError:
        raise HTTPParseError(f"Invalid Content-Length: {value}")
    if length < 0:
        raise HTTPParseError(f"Invalid Content-Length: {value}")
    return length


HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")


def split_header_block(block: bytes) -> List[str]:
    """
    Decode a raw header block and split it into lines, request line first.

    surrogateescape keeps non-UTF-8 path bytes round-trippable to the
    filesystem (os.fsencode reverses it on POSIX). Bare LF line endings are
    tolerated.
    """
    text = block.decode("utf-8", errors="surrogateescape")
    return text.replace("\r\n", "\n").split("\n")


def parse_headers(lines: List[str], max_headers: Optional[int] = None) -> Dict[str, str]:
    """
    Parse header lines into a dict with lowercase names.

    Continuation lines (leading whitespace) extend the previous header,
    repeated headers are comma-joined, and lines without a colon are
    skipped.

    Raises:
        HTTPParseError: More than max_headers headers.
    """
    headers: Dict[str, str] = {}
    current_name = None
    count = 0

    for line in lines:
        if not line:
            continue

        if line[0] in (" ", "\t"):
            if current_name is not None:
                headers[current_name] += " " + line.strip()
            continue

        match = HEADER_PATTERN.match(line)
        if not match:
            continue  # lenient

        count += 1
        if max_headers is not None and count > max_headers:
            raise HTTPParseError(f"Too many headers (limit {max_headers})")

        name, value = match.groups()
        name = name.strip().lower()
        value = value.strip()
        current_name = name

        if name in headers:
            headers[name] += ", " + value
        else:
            headers[name] = value

    return headers


@dataclass(frozen=True)
class HTTPRequest:
    """
    A parsed request. Built once per connection and never modified.

    Attributes:
        method:         Request method token ("GET", "POST", ...)
        target:         Raw request target exactly as sent
        path:           URL-decoded target path without query/fragment
        version:        "HTTP/1.0", "HTTP/1.1", ...
        headers:        Header names lowercased → values
        query_params:   Parsed query string
        body:           Bytes after the header block (Content-Length bounded)
        client_address: (ip, port) of the peer
    """

    method: str
    path: str
    target: str = ""
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list] = field(default_factory=dict)
    body: bytes = field(default=b"", repr=False)
    client_address: Tuple = ("", 0)

    @property
    def content_length(self) -> int:
        """Declared Content-Length, or 0 if missing or invalid."""
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Parses raw request bytes into HTTPRequest objects.

    ==========================================================================
    PARSER STEPS
    ==========================================================================

        1. Size check                   too large?     → HTTPParseError
        2. Find header terminator       missing?       → HTTPParseError
        3. Parse request line           malformed?     → HTTPParseError
        4. Parse headers                > max_headers? → HTTPParseError
        5. Extract body                 short body?    → HTTPParseError
        6. Build HTTPRequest

    ==========================================================================
    """

    # METHOD is any RFC 7230 token; the target is any run of non-space bytes.
    REQUEST_LINE_PATTERN = re.compile(
        r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+) ([^ ]+) (HTTP/\d\.\d)$"
    )

    def __init__(
        self,
        max_request_size: int = 256 * 1024 * 1024,
        max_headers: int = 64,
    ):
        self.max_request_size = max_request_size
        self.max_headers = max_headers

    def parse(
        self,
        data: bytes,
        client_address: Tuple = ("", 0),
    ) -> HTTPRequest:
        """
        Parse raw request data into an HTTPRequest.

        Args:
            data: Bytes buffered by the connection reader.
            client_address: Peer (ip, port) for logging.

        Returns:
            Parsed HTTPRequest.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        # =====================================================================
        # STEP 1: Size check
        # =====================================================================
        if len(data) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(data)} bytes")

        # =====================================================================
        # STEP 2: Split header block and body
        # =====================================================================
        boundary = find_header_end(data)
        if boundary is None:
            raise HTTPParseError("Incomplete request: no header terminator")
        header_end, terminator_length = boundary

        lines = split_header_block(data[:header_end])
        body = data[header_end + terminator_length:]

        # =====================================================================
        # STEP 3: Request line
        # =====================================================================
        method, target, version = self._parse_request_line(lines[0])
        path, query_params = self._split_target(target)

        # =====================================================================
        # STEP 4: Headers
        # =====================================================================
        headers = parse_headers(lines[1:], self.max_headers)

        # =====================================================================
        # STEP 5: Body, bounded by Content-Length when declared
        # =====================================================================
        content_length = parse_content_length(headers)
        if content_length is not None:
            if len(body) < content_length:
                raise HTTPParseError(
                    f"Incomplete body: expected {content_length} bytes, got {len(body)}"
                )
            body = body[:content_length]

        return HTTPRequest(
            method=method,
            path=path,
            target=target,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body,
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> Tuple[str, str, str]:
        """
        Parse "METHOD SP target SP HTTP/x.y".

        Raises:
            HTTPParseError: If the line does not have that shape.
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")
        return match.groups()

    def _split_target(self, target: str) -> Tuple[str, Dict[str, list]]:
        """
        Split a request target into a decoded path and query parameters.

        urlparse() is not used: it treats "//etc/passwd" as a network
        location and would drop the first path segment.
        """
        target = target.split("#", 1)[0]
        raw_path, _, query = target.partition("?")
        path = unquote(raw_path, errors="surrogateescape")
        query_params = parse_qs(query, keep_blank_values=True)
        return path, query_params


def parse_request(
    data: bytes,
    client_address: Tuple = ("", 0),
    max_size: int = 256 * 1024 * 1024,
) -> HTTPRequest:
    """Parse a request in one call with default limits."""
    parser = RequestParser(max_request_size=max_size)
    return parser.parse(data, client_address)
