"""
=============================================================================
STATUS CODES
=============================================================================

The bridge speaks exactly two statuses:

    ┌──────┬─────────────┬────────────────────────────────────────────────┐
    │ Code │ Phrase      │ Meaning here                                   │
    ├──────┼─────────────┼────────────────────────────────────────────────┤
    │ 200  │ OK          │ Read or write succeeded                        │
    │ 404  │ NOT FOUND   │ Anything else a client is allowed to observe:  │
    │      │             │ missing file, permission, I/O error, bad       │
    │      │             │ envelope, unsupported method                   │
    └──────┴─────────────┴────────────────────────────────────────────────┘

The upper-case "NOT FOUND" phrase is part of the wire format that existing
clients match on, so it is spelled out here rather than taken from the
stdlib's http.HTTPStatus.
=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    Response status codes used on the wire.

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'NOT FOUND'
    """

    OK = 200
    NOT_FOUND = 404

    @property
    def phrase(self) -> str:
        """Reason phrase used in the status line."""
        return _STATUS_PHRASES[self]

    @property
    def is_success(self) -> bool:
        return 200 <= self < 300


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.NOT_FOUND: "NOT FOUND",
}
