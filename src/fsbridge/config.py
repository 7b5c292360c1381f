"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the filesystem bridge.

The bridge is designed to run with NO configuration at all: every default
below reproduces the canonical behaviour (loopback only, first free port in
1025-65534, path-addressed protocol, files addressed from the filesystem
root). Everything here is an optional override.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m fsbridge --protocol envelope                    │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── FSBRIDGE_ROOT=/srv/data python -m fsbridge                │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import ipaddress
import os
from dataclasses import dataclass, field
from typing import Optional


PROTOCOLS = ("path", "envelope")
FRAMINGS = ("content-length", "short-read")


def default_root() -> str:
    """The filesystem root of the current working directory's drive."""
    return os.path.abspath(os.sep)


@dataclass
class ServerConfig:
    """
    Configuration for the filesystem bridge.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port_range_start, port_range_end, backlog

    FRAMING SETTINGS
    - framing, chunk_size, timeout, max_request_size, max_headers

    PROTOCOL SETTINGS
    - protocol, root_dir, serialize_paths

    THREADING SETTINGS
    - min_workers, max_workers, queue_size

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    Loopback address to bind to. Only "127.0.0.1" and "::1" are accepted;
    the bridge never listens on a routable interface.
    """

    port_range_start: int = 1025
    """First port tried by the port binder (inclusive)."""

    port_range_end: int = 65534
    """Last port tried by the port binder (inclusive)."""

    backlog: int = 128
    """Maximum number of queued connections in the kernel accept queue."""

    # ─────────────────────────────────────────────────────────────────────
    # FRAMING SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    framing: str = "content-length"
    """
    How the end of a request is detected.
    - "content-length" - headers, then exactly Content-Length body bytes
    - "short-read"     - legacy: a recv() shorter than chunk_size ends it
    """

    chunk_size: int = 1024
    """Bytes requested per recv() call."""

    timeout: Optional[float] = 30.0
    """
    Per-connection socket timeout in seconds (reads and writes).
    None = block forever (a stuck client pins its worker indefinitely).
    """

    max_request_size: int = 256 * 1024 * 1024  # 256 MB
    """Largest request (headers + body) accepted before dropping the client."""

    max_headers: int = 64
    """Maximum number of header lines tolerated in one request."""

    # ─────────────────────────────────────────────────────────────────────
    # PROTOCOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    protocol: str = "path"
    """
    Wire format served by this instance (never both at once).
    - "path"     - GET/POST /<path>, raw body (canonical)
    - "envelope" - JSON {"kind", "path", "data"} body
    """

    root_dir: str = field(default_factory=default_root)
    """
    Directory that request paths are resolved against. The default is the
    filesystem root, so "/tmp/a.txt" on the wire means /tmp/a.txt on disk.
    """

    serialize_paths: bool = False
    """
    Serialize concurrent operations on the same file with a per-path lock.
    Off by default: overlapping writers race and the last one wins.
    """

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Worker threads created at startup."""

    max_workers: int = 64
    """Upper bound on concurrently handled connections."""

    queue_size: int = 256
    """Accepted connections allowed to wait for a free worker."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """Access log format: 'text' (Apache-like) or 'json'."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        FSBRIDGE_ROOT        Root directory (default: filesystem root)
        FSBRIDGE_PROTOCOL    "path" or "envelope" (default: path)
        FSBRIDGE_PORT_START  First port to try (default: 1025)
        FSBRIDGE_PORT_END    Last port to try (default: 65534)
        FSBRIDGE_WORKERS     Max worker threads (default: 64)
        FSBRIDGE_TIMEOUT     Socket timeout in seconds, 0 = none (default: 30)
        FSBRIDGE_FRAMING     "content-length" or "short-read"
        FSBRIDGE_LOG_LEVEL   Logging level (default: INFO)

        =====================================================================
        """
        timeout = float(os.getenv("FSBRIDGE_TIMEOUT", "30"))
        max_workers = int(os.getenv("FSBRIDGE_WORKERS", "64"))
        return cls(
            root_dir=os.getenv("FSBRIDGE_ROOT") or default_root(),
            protocol=os.getenv("FSBRIDGE_PROTOCOL", "path"),
            port_range_start=int(os.getenv("FSBRIDGE_PORT_START", "1025")),
            port_range_end=int(os.getenv("FSBRIDGE_PORT_END", "65534")),
            min_workers=min(cls.min_workers, max_workers),
            max_workers=max_workers,
            timeout=timeout or None,
            framing=os.getenv("FSBRIDGE_FRAMING", "content-length"),
            log_level=os.getenv("FSBRIDGE_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called by the server constructor so that a bad value stops the
        process at startup instead of surfacing on the first request.
        """
        try:
            address = ipaddress.ip_address(self.host)
        except ValueError:
            raise ValueError(f"Invalid host: {self.host!r}")
        if not address.is_loopback:
            raise ValueError(f"host must be a loopback address, got {self.host}")

        if not 0 < self.port_range_start <= self.port_range_end < 65536:
            raise ValueError(
                f"Invalid port range: {self.port_range_start}-{self.port_range_end}"
            )

        if self.protocol not in PROTOCOLS:
            raise ValueError(f"protocol must be one of {PROTOCOLS}")

        if self.framing not in FRAMINGS:
            raise ValueError(f"framing must be one of {FRAMINGS}")

        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if not os.path.isdir(self.root_dir):
            raise ValueError(f"root_dir does not exist: {self.root_dir}")
