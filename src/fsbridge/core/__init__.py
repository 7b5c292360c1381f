"""
=============================================================================
CORE NETWORKING
=============================================================================

The transport side of the bridge:

    ports.py           first free loopback port in a range
    socket_server.py   listening socket and accept loop
    connection.py      origin guard, request framing, response write, close
    thread_pool.py     bounded workers that run one connection each

Nothing here knows about files or protocols; connections carry bytes in
and bytes out.

=============================================================================
"""

from .connection import (
    Connection,
    ConnectionState,
    RequestTooLargeError,
    is_loopback_address,
)
from .ports import NoPortAvailableError, bind_first_free_port, format_url
from .socket_server import SocketServer
from .thread_pool import ThreadPool

__all__ = [
    "Connection",
    "ConnectionState",
    "RequestTooLargeError",
    "is_loopback_address",
    "NoPortAvailableError",
    "bind_first_free_port",
    "format_url",
    "SocketServer",
    "ThreadPool",
]
