"""
=============================================================================
FILESYSTEM BRIDGE SERVER
=============================================================================

Wires the components together and runs the per-connection pipeline:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    ONE CONNECTION, ONE WORKER                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   accept loop ──► ThreadPool.submit ──► queue full? drop, no reply  │
    │                                                                      │
    │   worker:                                                            │
    │     1. origin guard        non-loopback?   close, no reply          │
    │     2. read request        timeout/too big close, no reply          │
    │     3. parse               HTTPParseError  close, no reply          │
    │     4. middleware + router                 200 or 404               │
    │     5. sendall(response)   failure logged, no retry                 │
    │     6. close                                                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Steps 1-3 fail the connection. Step 4 never does: ErrorMiddleware turns
every failure inside the router, including an unexpected exception, into
a 404.

=============================================================================
"""

import logging
from typing import Callable, Optional

from .config import ServerConfig
from .core import Connection, SocketServer, ThreadPool, RequestTooLargeError, format_url
from .handlers import FileStore
from .http import (
    HTTPRequest, RequestParser, HTTPParseError,
    HTTPResponse,
    Router, get_protocol,
)
from .middleware import MiddlewarePipeline, Middleware, ErrorMiddleware, LoggingMiddleware


logger = logging.getLogger(__name__)


class FileBridgeServer:
    """
    Loopback-only file read/write service.

    Usage:
        server = FileBridgeServer(ServerConfig(protocol="envelope"))
        server.run()  # prints http://127.0.0.1:<port>, blocks until SIGINT

    From another thread:
        threading.Thread(target=server.run, daemon=True).start()
        server.wait_until_ready(5)
        ... connect to server.port ...
        server.stop()
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(
            max_request_size=self.config.max_request_size,
            max_headers=self.config.max_headers,
        )
        self.protocol = get_protocol(self.config.protocol)
        self.store = FileStore(self.config.root_dir, self.config.serialize_paths)
        self._router = Router(self.protocol, self.store)

        self._middleware = MiddlewarePipeline()
        self._middleware.add(LoggingMiddleware(log_format=self.config.log_format))
        self._middleware.add(ErrorMiddleware())
        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None

    def use(self, middleware: Middleware) -> "FileBridgeServer":
        """Append middleware inside the error layer. Call before run()."""
        self._middleware.add(middleware)
        return self

    @property
    def port(self) -> Optional[int]:
        """The bound port, or None before run() has bound one."""
        return self._socket_server.port

    @property
    def url(self) -> str:
        return format_url(self.config.host, self.port)

    def run(self):
        """
        Bind, announce the URL, and serve until stopped.

        Raises:
            NoPortAvailableError: If no port in the range is free.
        """
        self._setup_logging()
        self._handler = self._middleware.wrap(self._router.handle)

        self._socket_server.bind()
        self._thread_pool.start()

        print(self.url, flush=True)
        logger.info(
            f"Serving protocol {self.protocol} from {self.store.root_dir} "
            f"({self.config.framing} framing)"
        )

        try:
            self._socket_server.serve_forever(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def stop(self):
        """Ask the accept loop to exit; run() then returns."""
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("fsbridge").setLevel(level)

    def _shutdown(self):
        logger.info("Shutting down server...")
        logger.debug(f"Thread pool stats: {self._thread_pool.stats}")
        timeout = self.config.timeout or 30.0
        self._thread_pool.shutdown(wait=True, timeout=timeout)
        logger.info("Server stopped")

    # =========================================================================
    # PER-CONNECTION PIPELINE
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Called on the accept thread; hands the connection to a worker."""
        submitted = self._thread_pool.submit(
            self._process_connection,
            args=(conn,),
            block=False,
        )
        if not submitted:
            logger.warning(
                f"[{conn.id}] Worker queue full, dropping connection from {conn.peer}"
            )
            conn.abort()

    def _process_connection(self, conn: Connection):
        """Runs on a worker thread. Closes conn on every path."""
        with conn:
            # ─────────────────────────────────────────────────────────────
            # 1. Origin guard
            # ─────────────────────────────────────────────────────────────
            if not conn.is_local:
                logger.error(
                    f"[{conn.id}] Rejected connection from non-local address {conn.peer}"
                )
                return

            # ─────────────────────────────────────────────────────────────
            # 2. Read
            # ─────────────────────────────────────────────────────────────
            try:
                raw_request = conn.read_request()
            except (TimeoutError, RequestTooLargeError) as e:
                logger.error(f"[{conn.id}] Failed to read request from {conn.peer}: {e}")
                return
            except OSError as e:
                logger.error(f"[{conn.id}] Connection error from {conn.peer}: {e}")
                return

            if raw_request is None:
                logger.debug(f"[{conn.id}] {conn.peer} closed without sending a request")
                return

            # ─────────────────────────────────────────────────────────────
            # 3. Parse
            # ─────────────────────────────────────────────────────────────
            try:
                request = self._parser.parse(raw_request, conn.address)
            except HTTPParseError as e:
                logger.error(f"[{conn.id}] Failed to parse request from {conn.peer}: {e}")
                return

            # ─────────────────────────────────────────────────────────────
            # 4. Route
            # ─────────────────────────────────────────────────────────────
            response = self._handler(request)

            # ─────────────────────────────────────────────────────────────
            # 5. Respond
            # ─────────────────────────────────────────────────────────────
            if conn.send_response(response.to_bytes()):
                logger.debug(
                    f"[{conn.id}] Handled {request.method} request for client {conn.peer}"
                )
