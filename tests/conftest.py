"""
pytest configuration and fixtures.
"""

import socket
import threading
from typing import Generator
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fsbridge import FileBridgeServer, ServerConfig
from fsbridge.handlers import FileStore


@pytest.fixture
def sample_get_request() -> bytes:
    """Path-protocol read of /tmp/a/b.txt."""
    return b"GET /tmp/a/b.txt HTTP/1.1\r\n\r\n"


@pytest.fixture
def sample_post_request() -> bytes:
    """Path-protocol write of "hello" to /tmp/a/b.txt."""
    body = b"hello"
    return (
        b"POST /tmp/a/b.txt HTTP/1.1\r\n"
        b"Host: 127.0.0.1\r\n"
        b"Content-Length: %d\r\n"
        b"\r\n" % len(body)
    ) + body


@pytest.fixture
def root(tmp_path) -> Path:
    """A scratch directory used as the bridge root."""
    return tmp_path


@pytest.fixture
def store(root: Path) -> FileStore:
    return FileStore(str(root))


@pytest.fixture
def config(root: Path) -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        root_dir=str(root),
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class RunningServer:
    """Runs a FileBridgeServer on a background thread."""

    def __init__(self, server: FileBridgeServer):
        self.server = server
        self._thread: threading.Thread = None

    @property
    def port(self) -> int:
        return self.server.port

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.stop()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def exchange(self, data: bytes, timeout: float = 5.0) -> bytes:
        """Send one request, half-close, and read until the server closes."""
        with socket.create_connection(("127.0.0.1", self.port), timeout=timeout) as s:
            s.sendall(data)
            s.shutdown(socket.SHUT_WR)
            return recv_all(s)


def recv_all(sock: socket.socket) -> bytes:
    chunks = []
    while True:
        chunk = sock.recv(4096)
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)


def _start(config: ServerConfig, free_port: int) -> RunningServer:
    config.port_range_start = free_port
    config.port_range_end = min(free_port + 100, 65534)
    running = RunningServer(FileBridgeServer(config))
    running.start()
    return running


@pytest.fixture
def bridge(config: ServerConfig, free_port: int) -> Generator[RunningServer, None, None]:
    """A path-protocol server rooted at the scratch directory."""
    running = _start(config, free_port)
    yield running
    running.stop()


@pytest.fixture
def envelope_bridge(config: ServerConfig, free_port: int) -> Generator[RunningServer, None, None]:
    """An envelope-protocol server rooted at the scratch directory."""
    config.protocol = "envelope"
    running = _start(config, free_port)
    yield running
    running.stop()
