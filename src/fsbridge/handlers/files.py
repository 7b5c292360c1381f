"""
=============================================================================
FILE STORE
=============================================================================

The filesystem capability behind the bridge: read bytes at a path, write
bytes at a path, create directories. Nothing is cached; each call is one
direct read or write.

=============================================================================
PATH RESOLUTION
=============================================================================

Client paths are resolved against a root directory:

        root_dir = "/"                  root_dir = "/srv/share"
        ───────────────                 ───────────────────────
        "/tmp/a.txt" → /tmp/a.txt       "/docs/a.txt"   → /srv/share/docs/a.txt
        "tmp/a.txt"  → <cwd>/tmp/a.txt  "../etc/passwd" → PathOutsideRootError

The default root is the filesystem root, which gives clients the whole host
filesystem; a path without a leading separator is then relative to the
working directory. With any other root, every path is taken relative to
it, and paths that normalise to somewhere outside it are refused.

Normalisation is lexical (os.path.normpath). Symlinks inside the root are
followed by the OS when the file is opened, as with any local program.

=============================================================================
CONCURRENCY
=============================================================================

By default there is NO coordination between concurrent operations on the
same file: the last writer wins and a reader may see a partially written
file. With serialize_paths=True every operation takes a per-path mutex
from PathLockRegistry first, so operations on one path run one at a time.
Different paths never block each other.

=============================================================================
"""

import logging
import os
import threading
from contextlib import contextmanager, nullcontext
from typing import Dict, Iterator


logger = logging.getLogger(__name__)


class PathOutsideRootError(PermissionError):
    """Raised when a client path normalises to a location outside root_dir."""


class PathLockRegistry:
    """
    Lazily created mutex per path.

    Locks are created on first use and kept for the process lifetime; the
    registry grows with the number of distinct paths touched.
    """

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()  # protects _locks

    def lock_for(self, path: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(path)
            if lock is None:
                lock = self._locks[path] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, path: str) -> Iterator[None]:
        with self.lock_for(path):
            yield

    def __len__(self) -> int:
        return len(self._locks)


class FileStore:
    """
    Read and write files beneath a root directory.

    All failures surface as OSError subclasses (FileNotFoundError,
    PermissionError, IsADirectoryError, PathOutsideRootError, ...). The
    router turns every one of them into a 404.

    Usage:
        store = FileStore("/")
        store.write("/tmp/a/b.txt", b"hello", create_parents=True)
        store.read("/tmp/a/b.txt")  # b"hello"
    """

    def __init__(self, root_dir: str = os.sep, serialize_paths: bool = False):
        self.root_dir = os.path.abspath(root_dir)
        self._locks = PathLockRegistry() if serialize_paths else None

    @property
    def serialize_paths(self) -> bool:
        return self._locks is not None

    @property
    def confined(self) -> bool:
        """False when root_dir is the filesystem root."""
        return os.path.dirname(self.root_dir) != self.root_dir

    def resolve(self, path: str) -> str:
        """
        Map a client path to an absolute filesystem path.

        Raises:
            PathOutsideRootError: If the result escapes root_dir.
            FileNotFoundError: If the path is empty or names the root itself.
        """
        relative = path.lstrip("/\\")
        if not relative:
            raise FileNotFoundError(f"Empty path: {path!r}")

        # Unconfined, a path without a leading separator is relative to the
        # working directory, like any local program's.
        if self.confined or relative != path:
            base = self.root_dir
        else:
            base = os.getcwd()
        full_path = os.path.normpath(os.path.join(base, relative))

        if os.path.commonpath([self.root_dir, full_path]) != self.root_dir:
            raise PathOutsideRootError(f"Path escapes root {self.root_dir}: {path!r}")
        if full_path == self.root_dir:
            raise FileNotFoundError(f"Path names the root directory: {path!r}")

        return full_path

    def _guard(self, full_path: str):
        if self._locks is None:
            return nullcontext()
        return self._locks.hold(full_path)

    def read(self, path: str) -> bytes:
        """
        Return the full contents of the file at path.

        Never creates anything: a missing file raises FileNotFoundError.
        """
        full_path = self.resolve(path)
        with self._guard(full_path):
            with open(full_path, "rb") as f:
                data = f.read()
        logger.debug(f"Read {len(data)} bytes from {full_path}")
        return data

    def write(self, path: str, data: bytes, create_parents: bool = False) -> None:
        """
        Write data to path, replacing any existing content.

        Args:
            path: Client path.
            data: Bytes to store.
            create_parents: Create missing intermediate directories first.
        """
        full_path = self.resolve(path)
        with self._guard(full_path):
            if create_parents:
                parent = os.path.dirname(full_path)
                if parent:
                    os.makedirs(parent, exist_ok=True)
            with open(full_path, "wb") as f:
                f.write(data)
        logger.debug(f"Wrote {len(data)} bytes to {full_path}")
