"""
=============================================================================
CONNECTION ACCEPTOR
=============================================================================

Owns the listening socket: binds it through the port binder, then accepts
connections until shutdown and hands each one to a callback.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    bind()            bind_first_free_port(range) → socket, port     │
    │        │                                                             │
    │        ▼                                                             │
    │    serve_forever()   Main loop (blocks here!)                        │
    │        │                                                             │
    │        ├──► _setup_signals()  SIGTERM/SIGINT, main thread only      │
    │        │                                                             │
    │        └──► while running:                                           │
    │                accept()         1s timeout so shutdown is noticed   │
    │                Connection()     wrap client socket                   │
    │                handler(conn)    server submits it to the pool        │
    │                                                                      │
    │    shutdown()        _running = False; the loop exits within 1s      │
    │                                                                      │
    │    _cleanup()        restore signal handlers, close socket           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A failed accept() (EMFILE, ECONNABORTED, ...) is logged and the loop goes
on. Only shutdown() ends it.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Callable, Optional

from ..config import ServerConfig
from .connection import Connection
from .ports import bind_first_free_port


logger = logging.getLogger(__name__)


ACCEPT_POLL_INTERVAL = 1.0


class SocketServer:
    """
    Loopback TCP listener with a blocking accept loop.

    Usage:
        server = SocketServer(config)
        port = server.bind()
        server.serve_forever(handle_connection)  # blocks until shutdown
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self.port: Optional[int] = None
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._ready_event = threading.Event()
        self._original_handlers: dict = {}

    def bind(self) -> int:
        """
        Bind the first free port in the configured range.

        Returns:
            The bound port.

        Raises:
            NoPortAvailableError: If the whole range is taken.
        """
        if self._socket is not None:
            return self.port

        self._socket, self.port = bind_first_free_port(
            self.config.host,
            self.config.port_range_start,
            self.config.port_range_end,
            self.config.backlog,
        )
        self._socket.settimeout(ACCEPT_POLL_INTERVAL)
        logger.info(f"Server listening on {self.config.host}:{self.port}")
        return self.port

    def _setup_signals(self):
        """Install SIGTERM/SIGINT handlers that trigger shutdown()."""
        # signal.signal() raises ValueError off the main thread.
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def serve_forever(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until shutdown() is called.

        Args:
            connection_handler: Receives each accepted Connection. It must
                                not block for long; the server submits the
                                connection to its worker pool.
        """
        if self._socket is None:
            raise RuntimeError("serve_forever() called before bind()")

        self._running = True
        self._setup_signals()
        self._ready_event.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._running or self._socket.fileno() == -1:
                    break
                logger.error(f"Accept error: {e}")
                continue

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                chunk_size=self.config.chunk_size,
                timeout=self.config.timeout,
                max_request_size=self.config.max_request_size,
                framing=self.config.framing,
            )
            connection_handler(conn)

    def shutdown(self):
        """Stop the accept loop. Safe to call from any thread, more than once."""
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self):
        self._restore_signals()
        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        self._ready_event.clear()
        logger.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the accept loop is running. For tests and embedders."""
        return self._ready_event.wait(timeout)
