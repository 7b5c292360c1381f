"""
=============================================================================
HANDLERS
=============================================================================

The filesystem side of the bridge. The router decides WHAT to do; the
handlers here do it against the host filesystem.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                  FileOperation → FileStore → bytes                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    READ  /tmp/a/b.txt    ──►  open(rb).read()      ──►  b"hello"    │
    │    WRITE /tmp/a/b.txt    ──►  makedirs + open(wb)  ──►  None        │
    │                                                                      │
    │    any OSError           ──►  propagates to the router (→ 404)      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .files import FileStore, PathLockRegistry, PathOutsideRootError

__all__ = [
    "FileStore",
    "PathLockRegistry",
    "PathOutsideRootError",
]
