"""
=============================================================================
PORT BINDER
=============================================================================

The bridge has no well-known port. At startup it walks a fixed range of
TCP ports and keeps the first one it can bind on the loopback interface:

    port_range_start ──► try bind ──► in use? ──► next port ──► ...
                             │
                             └──► success ──► listen() ──► done

Ports below 1024 are privileged on Unix and are never tried by default.

If the whole range is exhausted the process cannot serve anything, so
NoPortAvailableError is raised and the entry point exits. Nothing is
retried.

SO_REUSEPORT is never set here. With it, the kernel lets two sockets share
a port and the scan would "succeed" on a port that another server is
already listening on.
=============================================================================
"""

import logging
import os
import socket
from typing import Tuple


logger = logging.getLogger(__name__)


class NoPortAvailableError(RuntimeError):
    """Raised when every port in the scan range is already taken."""

    def __init__(self, host: str, start: int, end: int):
        super().__init__(f"No server ports available on {host} in {start}-{end}")
        self.host = host
        self.start = start
        self.end = end


def _family_for(host: str) -> socket.AddressFamily:
    return socket.AF_INET6 if ":" in host else socket.AF_INET


def _create_listener(host: str, port: int, backlog: int) -> socket.socket:
    """Bind and listen on a single port, closing the socket on failure."""
    sock = socket.socket(_family_for(host), socket.SOCK_STREAM)
    try:
        # SO_REUSEADDR lets us reclaim ports stuck in TIME_WAIT; on Windows
        # it would also allow stealing a live port, so skip it there.
        if os.name != "nt":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(backlog)
    except OSError:
        sock.close()
        raise
    return sock


def bind_first_free_port(
    host: str = "127.0.0.1",
    start: int = 1025,
    end: int = 65534,
    backlog: int = 128,
) -> Tuple[socket.socket, int]:
    """
    Bind a listening socket to the first free port in [start, end].

    Args:
        host: Loopback address to bind on.
        start: First port to try (inclusive).
        end: Last port to try (inclusive).
        backlog: listen() backlog for the resulting socket.

    Returns:
        (listening socket, chosen port)

    Raises:
        NoPortAvailableError: If no port in the range could be bound.
    """
    for port in range(start, end + 1):
        try:
            sock = _create_listener(host, port, backlog)
        except OSError as e:
            logger.debug(f"Port {port} unavailable: {e}")
            continue

        logger.debug(f"Bound {host}:{port}")
        return sock, port

    raise NoPortAvailableError(host, start, end)


def format_url(host: str, port: int) -> str:
    """Discovery URL printed at startup, e.g. http://127.0.0.1:1025."""
    if ":" in host:
        return f"http://[{host}]:{port}"
    return f"http://{host}:{port}"
