"""
Unit tests for the operation router.
"""

import logging
import os

import pytest

from fsbridge.handlers.files import FileStore
from fsbridge.http.protocol import EnvelopeProtocol, PathProtocol, encode_envelope
from fsbridge.http.request import HTTPRequest
from fsbridge.http.router import Router
from fsbridge.http.status_codes import HTTPStatus


def make_request(method: str, path: str = "/", body: bytes = b"") -> HTTPRequest:
    return HTTPRequest(
        method=method,
        path=path,
        target=path,
        body=body,
        client_address=("127.0.0.1", 50000),
    )


@pytest.fixture
def path_router(store: FileStore) -> Router:
    return Router(PathProtocol(), store)


@pytest.fixture
def envelope_router(store: FileStore) -> Router:
    return Router(EnvelopeProtocol(), store)


class TestPathRouting:
    """Tests for the path-addressed protocol."""

    def test_write_then_read(self, path_router: Router, root):
        """A written file reads back byte for byte."""
        response = path_router.handle(make_request("POST", "/a/b.txt", b"hello"))
        assert response.to_bytes() == b"HTTP/1.1 200 OK\r\n"

        response = path_router.handle(make_request("GET", "/a/b.txt"))
        assert response.to_bytes() == b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\n\r\nhello"
        assert (root / "a" / "b.txt").read_bytes() == b"hello"

    def test_write_creates_parents(self, path_router: Router, root):
        response = path_router.handle(make_request("POST", "/x/y/z/file.bin", b"\x00\xff"))

        assert response.status == HTTPStatus.OK
        assert (root / "x" / "y" / "z" / "file.bin").read_bytes() == b"\x00\xff"

    def test_write_overwrites(self, path_router: Router, root):
        (root / "f").write_bytes(b"old content")
        path_router.handle(make_request("POST", "/f", b"new"))

        assert (root / "f").read_bytes() == b"new"

    def test_read_missing_is_404_and_not_created(self, path_router: Router, root):
        response = path_router.handle(make_request("GET", "/does/not/exist"))

        assert response.to_bytes() == b"HTTP/1.1 404 NOT FOUND\r\n"
        assert not (root / "does").exists()

    def test_read_directory_is_404(self, path_router: Router, root):
        (root / "dir").mkdir()
        assert path_router.handle(make_request("GET", "/dir")).status == HTTPStatus.NOT_FOUND

    def test_read_empty_file(self, path_router: Router, root):
        (root / "empty").write_bytes(b"")
        response = path_router.handle(make_request("GET", "/empty"))

        assert response.to_bytes() == b"HTTP/1.1 200 OK\r\nContent-Length: 0\r\n\r\n"

    def test_write_onto_directory_is_404(self, path_router: Router, root):
        (root / "dir").mkdir()
        assert path_router.handle(make_request("POST", "/dir", b"x")).status == HTTPStatus.NOT_FOUND

    def test_unsupported_method_is_404(self, path_router: Router, caplog):
        with caplog.at_level(logging.ERROR, logger="fsbridge.http.router"):
            response = path_router.handle(make_request("DELETE", "/f"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert "Unsupported request" in caplog.text
        assert "DELETE" in caplog.text

    def test_get_ignores_body(self, path_router: Router, root):
        (root / "f").write_bytes(b"content")
        body = encode_envelope("setFileData", "/other", b"zzz")
        response = path_router.handle(make_request("GET", "/f", body))

        assert response.body == b"content"
        assert not (root / "other").exists()

    def test_escape_from_root_is_404(self, path_router: Router, root, caplog):
        with caplog.at_level(logging.WARNING, logger="fsbridge.http.router"):
            response = path_router.handle(make_request("POST", "/../escaped.txt", b"x"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert not (root.parent / "escaped.txt").exists()
        assert "Rejected" in caplog.text


class TestEnvelopeRouting:
    """Tests for the envelope-addressed protocol."""

    def test_set_then_get(self, envelope_router: Router, root):
        path = "/env.txt"

        response = envelope_router.handle(
            make_request("POST", "/", encode_envelope("setFileData", path, b"hi"))
        )
        assert response.to_bytes() == b"HTTP/1.1 200 OK\r\n"

        response = envelope_router.handle(
            make_request("POST", "/", encode_envelope("getFileData", path))
        )
        assert response.to_bytes() == b"HTTP/1.1 200 OK\r\nContent-Length: 2\r\n\r\nhi"
        assert (root / "env.txt").read_bytes() == b"hi"

    def test_kind_inferred_from_method(self, envelope_router: Router, root):
        (root / "f").write_bytes(b"abc")
        body = b'{"path": "/f"}'

        response = envelope_router.handle(make_request("GET", "/ignored", body))
        assert response.body == b"abc"

    def test_write_does_not_create_parents(self, envelope_router: Router, root):
        body = encode_envelope("setFileData", "/missing/dir/f", b"x")
        response = envelope_router.handle(make_request("POST", "/", body))

        assert response.status == HTTPStatus.NOT_FOUND
        assert not (root / "missing").exists()

    @pytest.mark.parametrize("body", [
        b"not json",
        b"\xff\xfe",
        b"[1, 2, 3]",
        b'{"kind": "setFileData", "path": "/f"}',
        b'{"kind": "setFileData", "path": "/f", "data": [256]}',
        b'{"kind": "setFileData", "path": "/f", "data": "abc"}',
        b'{"kind": "getFileData", "path": 42}',
        b'{"kind": "deleteFile", "path": "/f"}',
    ])
    def test_invalid_envelope_is_404(self, envelope_router: Router, root, body):
        response = envelope_router.handle(make_request("POST", "/", body))

        assert response.status == HTTPStatus.NOT_FOUND
        assert os.listdir(root) == []

    def test_put_is_unsupported(self, envelope_router: Router):
        body = encode_envelope("getFileData", "/f")
        assert envelope_router.handle(make_request("PUT", "/", body)).status == 404
