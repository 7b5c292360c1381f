"""
=============================================================================
FSBRIDGE - Loopback Filesystem Bridge
=============================================================================

A single-process service that lets a LOCAL client read and write host
files over a raw TCP connection, using small HTTP-like requests.

    $ python -m fsbridge
    http://127.0.0.1:1025

    $ printf 'POST /tmp/a/b.txt HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello' \
        | nc 127.0.0.1 1025
    HTTP/1.1 200 OK

    $ printf 'GET /tmp/a/b.txt HTTP/1.1\r\n\r\n' | nc 127.0.0.1 1025
    HTTP/1.1 200 OK
    Content-Length: 5

    hello

=============================================================================
ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Port Binder ──► Acceptor ──► ThreadPool ──► per connection:       │
    │                                                                      │
    │     Origin Guard → Reader → Parser → Protocol → Router → Writer     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    fsbridge/
    ├── __init__.py          # package exports
    ├── __main__.py          # CLI entry point (python -m fsbridge)
    ├── server.py            # FileBridgeServer: wires everything together
    ├── config.py            # ServerConfig dataclass
    ├── core/                # transport
    │   ├── ports.py         # port range scan
    │   ├── socket_server.py # accept loop
    │   ├── connection.py    # origin guard, framing, send, close
    │   └── thread_pool.py   # bounded worker pool
    ├── http/                # request/response layer
    │   ├── request.py       # request parser
    │   ├── protocol.py      # path and envelope wire protocols
    │   ├── router.py        # operation router
    │   ├── response.py      # response writer
    │   └── status_codes.py  # 200 / 404
    ├── handlers/
    │   └── files.py         # FileStore, per-path locks
    └── middleware/
        ├── base.py          # Middleware, MiddlewarePipeline
        └── logging.py       # access log

SECURITY: the only access control is "the peer is 127.0.0.1 or ::1". Any
local process can read and write anything the server's user can.

=============================================================================
"""

__version__ = "1.0.0"

from .server import FileBridgeServer
from .config import ServerConfig

__all__ = ["FileBridgeServer", "ServerConfig", "__version__"]
