"""
=============================================================================
CONNECTION HANDLING
=============================================================================

One accepted socket, owned by exactly one worker, used for exactly one
request and one response, then closed.

=============================================================================
TCP IS A BYTE STREAM
=============================================================================

TCP keeps bytes in order but does not keep message boundaries. A client
that sends

    POST /tmp/a/b.txt HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello

may be seen by recv() as "POST /tmp/a", then "/b.txt HTTP/1.1\r\n...",
then "hello". The reader has to buffer and decide for itself when the
request is complete. Two framing strategies are available:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ content-length (default)                                            │
    │ ─────────────────────────────────────────────────────────────────── │
    │  1. recv() until the header block ends (\r\n\r\n or \n\n)           │
    │  2. read Content-Length from the headers (0 when absent)            │
    │  3. recv() until that many body bytes are buffered                  │
    │                                                                     │
    │  The peer closing early is not an error here: whatever arrived is   │
    │  handed to the parser, which decides whether it is a request.       │
    ├─────────────────────────────────────────────────────────────────────┤
    │ short-read (legacy)                                                 │
    │ ─────────────────────────────────────────────────────────────────── │
    │  recv(chunk_size) until a read returns FEWER than chunk_size bytes  │
    │                                                                     │
    │  A request of exactly N * chunk_size bytes leaves the reader        │
    │  waiting for one more recv() that never comes; only the socket      │
    │  timeout ends it.                                                   │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ORIGIN GUARD
=============================================================================

The bridge hands out the host filesystem, so only the loopback interface
may talk to it. The listening socket is bound to loopback already; the
guard re-checks the peer of every accepted connection and closes anything
else without writing a byte.

=============================================================================
CONNECTION STATES
=============================================================================

    NEW ───► READING ───► WRITING ───► CLOSING ───► CLOSED
     │          │                         ▲
     └──────────┴─────────────────────────┘
          (rejected, read failed, parse failed)

=============================================================================
"""

import ipaddress
import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Tuple
import uuid

from ..http.request import (
    HTTPParseError,
    find_header_end,
    parse_content_length,
    parse_headers,
    split_header_block,
)


logger = logging.getLogger(__name__)


LOOPBACK_ADDRESSES = (
    ipaddress.ip_address("127.0.0.1"),
    ipaddress.ip_address("::1"),
)


# close() gives the peer this long, in total, to finish sending.
DRAIN_TIMEOUT = 0.5
DRAIN_LIMIT = 64 * 1024


class RequestTooLargeError(Exception):
    """The buffered request grew past max_request_size."""


def is_loopback_address(host: str) -> bool:
    """
    True only for the peer addresses 127.0.0.1 and ::1.

    An IPv4-mapped ::ffff:127.0.0.1 counts as 127.0.0.1. Anything that is
    not an IP address at all is rejected.
    """
    try:
        address = ipaddress.ip_address(host.split("%", 1)[0])
    except ValueError:
        return False
    mapped = getattr(address, "ipv4_mapped", None)
    if mapped is not None:
        address = mapped
    return address in LOOPBACK_ADDRESSES


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    WRITING = "writing"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A single client connection.

    Attributes:
        socket: The accepted client socket.
        address: Peer address as returned by accept().
        id: Short identifier used as the log prefix.
        state: Current lifecycle state.
        chunk_size: Bytes requested per recv().
        timeout: Seconds allowed for reading the whole request, and for
            each send; None blocks forever. A peer that trickles bytes
            cannot stretch the read past it.
        max_request_size: Upper bound on buffered request bytes.
        framing: "content-length" or "short-read".
    """

    socket: socket.socket
    address: Tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    chunk_size: int = 1024
    timeout: Optional[float] = 30.0
    max_request_size: int = 256 * 1024 * 1024
    framing: str = "content-length"

    _buffer: bytes = field(default=b"", repr=False)
    _deadline: Optional[float] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def peer(self) -> str:
        """ip:port for log messages."""
        return f"{self.client_ip}:{self.address[1]}"

    @property
    def is_local(self) -> bool:
        """Whether the peer passed the origin guard."""
        return is_loopback_address(self.client_ip)

    @property
    def age(self) -> float:
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Buffer one request from the socket.

        Returns:
            The request bytes, or None if the peer sent nothing at all.

        Raises:
            TimeoutError: The request was not complete within timeout seconds.
            RequestTooLargeError: More than max_request_size bytes buffered.
        """
        self.state = ConnectionState.READING
        if self.timeout:
            self._deadline = time.monotonic() + self.timeout
        try:
            if self.framing == "short-read":
                data = self._read_short()
            else:
                data = self._read_content_length()
        except socket.timeout:
            raise TimeoutError(
                f"Request read timed out after {self.timeout}s "
                f"({len(self._buffer)} bytes buffered)"
            )
        return data or None

    def _read_content_length(self) -> bytes:
        # ─────────────────────────────────────────────────────────────
        # Header block
        # ─────────────────────────────────────────────────────────────
        end = find_header_end(self._buffer)
        while end is None:
            if not self._fill():
                return self._buffer
            end = find_header_end(self._buffer)

        index, length = end
        body_start = index + length

        # ─────────────────────────────────────────────────────────────
        # Body
        # ─────────────────────────────────────────────────────────────
        try:
            content_length = parse_content_length(
                parse_headers(split_header_block(self._buffer[:index])[1:])
            ) or 0
        except HTTPParseError:
            # Let the parser report the bad header.
            return self._buffer

        request_end = body_start + content_length
        if request_end > self.max_request_size:
            raise RequestTooLargeError(
                f"Declared request size {request_end} exceeds {self.max_request_size}"
            )

        while len(self._buffer) < request_end:
            if not self._fill():
                break

        return self._buffer[:request_end]

    def _read_short(self) -> bytes:
        while True:
            chunk = self._recv()
            if not chunk:
                return self._buffer
            self._append(chunk)
            if len(chunk) < self.chunk_size:
                return self._buffer

    def _fill(self) -> bool:
        """recv() once into the buffer. False when the peer is done."""
        chunk = self._recv()
        if not chunk:
            return False
        self._append(chunk)
        return True

    def _append(self, chunk: bytes):
        self._buffer += chunk
        if len(self._buffer) > self.max_request_size:
            raise RequestTooLargeError(
                f"Request too large: {len(self._buffer)} bytes "
                f"(limit {self.max_request_size})"
            )

    def _recv(self) -> bytes:
        if self._deadline is not None:
            remaining = self._deadline - time.monotonic()
            if remaining <= 0:
                raise socket.timeout("request deadline passed")
            self.socket.settimeout(remaining)
        # A reset or closed pipe ends the request like an orderly EOF.
        try:
            return self.socket.recv(self.chunk_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Write the whole response with sendall().

        Returns:
            True if sent, False if the peer went away. Failures are logged
            and never retried.
        """
        self.state = ConnectionState.WRITING
        # The read may have shrunk the socket timeout to its deadline.
        self.socket.settimeout(self.timeout)
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send to {self.peer} failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection: shutdown(SHUT_WR), drain, close.

        The drain lets the response reach the peer before close() could
        turn unread input into a reset. It stops after DRAIN_TIMEOUT seconds
        or DRAIN_LIMIT bytes, whichever comes first.

        Safe to call more than once.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # peer already gone

        deadline = time.monotonic() + DRAIN_TIMEOUT
        drained = 0
        try:
            while drained < DRAIN_LIMIT:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                chunk = self.socket.recv(1024)
                if not chunk:
                    break
                drained += len(chunk)
        except OSError:
            pass

        self._release()

    def abort(self):
        """
        Close at once, without the drain. For connections that get no
        response, where nothing has to reach the peer first.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._release()

    def _release(self):
        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
