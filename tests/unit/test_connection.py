"""
Unit tests for the connection reader, writer and origin guard.

A socketpair stands in for an accepted TCP socket; the address passed to
Connection is what the origin guard sees.
"""

import logging
import socket
import threading
import time

import pytest

from fsbridge import FileBridgeServer
from fsbridge.core.connection import (
    Connection,
    ConnectionState,
    RequestTooLargeError,
    is_loopback_address,
)


LOCAL = ("127.0.0.1", 50000)


def recv_all(sock: socket.socket) -> bytes:
    chunks = []
    while True:
        chunk = sock.recv(4096)
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)


@pytest.fixture
def pair():
    server_side, client_side = socket.socketpair()
    yield server_side, client_side
    for s in (server_side, client_side):
        try:
            s.close()
        except OSError:
            pass


def padded_request(total: int) -> bytes:
    """A POST whose full size on the wire is exactly total bytes."""
    head = b"POST /f HTTP/1.1\r\nContent-Length: %d\r\n\r\n"
    body_len = total - len(head % 0)
    while len(head % body_len) + body_len != total:
        body_len -= 1
    return (head % body_len) + b"x" * body_len


class Trickler(threading.Thread):
    """Sends one byte every interval until stopped or the peer goes away."""

    def __init__(self, sock: socket.socket, interval: float = 0.1, duration: float = 4.0):
        super().__init__(daemon=True)
        self.sock = sock
        self.interval = interval
        self.duration = duration
        self.stopped = threading.Event()

    def run(self):
        deadline = time.monotonic() + self.duration
        while not self.stopped.is_set() and time.monotonic() < deadline:
            try:
                self.sock.send(b"x")
            except OSError:
                return
            time.sleep(self.interval)

    def stop(self):
        self.stopped.set()
        self.join(timeout=2.0)


class TestContentLengthFraming:
    """Tests for the default reader."""

    def test_exact_chunk_multiple_completes(self, pair):
        """A 1024-byte request does not wait for more data."""
        server_side, client_side = pair
        request = padded_request(1024)
        assert len(request) == 1024

        client_side.sendall(request)
        conn = Connection(server_side, LOCAL, chunk_size=1024, timeout=2.0)

        start = time.time()
        assert conn.read_request() == request
        assert time.time() - start < 1.0

    def test_request_split_across_sends(self, pair):
        server_side, client_side = pair
        request = b"POST /f HTTP/1.1\r\nContent-Length: 11\r\n\r\nhello world"

        def trickle():
            for i in range(0, len(request), 7):
                client_side.sendall(request[i:i + 7])
                time.sleep(0.01)

        thread = threading.Thread(target=trickle)
        thread.start()
        conn = Connection(server_side, LOCAL, chunk_size=16, timeout=2.0)

        assert conn.read_request() == request
        thread.join()

    def test_body_larger_than_chunk(self, pair):
        server_side, client_side = pair
        body = b"y" * 5000
        request = b"POST /f HTTP/1.1\r\nContent-Length: 5000\r\n\r\n" + body
        client_side.sendall(request)

        conn = Connection(server_side, LOCAL, chunk_size=1024, timeout=2.0)
        assert conn.read_request() == request

    def test_no_content_length_means_no_more_reads(self, pair):
        server_side, client_side = pair
        client_side.sendall(b"GET /f HTTP/1.1\r\n\r\n")

        conn = Connection(server_side, LOCAL, timeout=2.0)
        assert conn.read_request() == b"GET /f HTTP/1.1\r\n\r\n"

    def test_early_eof_returns_buffer(self, pair):
        """Whatever arrived is handed on when the peer closes."""
        server_side, client_side = pair
        client_side.sendall(b"POST /f HTTP/1.1\r\nContent-Length: 100\r\n\r\nshort")
        client_side.shutdown(socket.SHUT_WR)

        conn = Connection(server_side, LOCAL, timeout=2.0)
        assert conn.read_request().endswith(b"short")

    def test_eof_before_headers_end(self, pair):
        server_side, client_side = pair
        client_side.sendall(b"GET /f HTTP/1.1\r\n")
        client_side.shutdown(socket.SHUT_WR)

        conn = Connection(server_side, LOCAL, timeout=2.0)
        assert conn.read_request() == b"GET /f HTTP/1.1\r\n"

    def test_empty_stream_is_none(self, pair):
        server_side, client_side = pair
        client_side.shutdown(socket.SHUT_WR)

        conn = Connection(server_side, LOCAL, timeout=2.0)
        assert conn.read_request() is None

    def test_declared_size_over_limit(self, pair):
        server_side, client_side = pair
        client_side.sendall(b"POST /f HTTP/1.1\r\nContent-Length: 999999\r\n\r\n")

        conn = Connection(server_side, LOCAL, timeout=2.0, max_request_size=1000)
        with pytest.raises(RequestTooLargeError):
            conn.read_request()

    def test_headers_over_limit(self, pair):
        server_side, client_side = pair
        client_side.sendall(b"GET /f HTTP/1.1\r\n" + b"X-Pad: aaaaaaaa\r\n" * 100)

        conn = Connection(server_side, LOCAL, timeout=2.0, max_request_size=256)
        with pytest.raises(RequestTooLargeError):
            conn.read_request()

    def test_timeout(self, pair):
        server_side, client_side = pair
        client_side.sendall(b"POST /f HTTP/1.1\r\nContent-Length: 10\r\n\r\nabc")

        conn = Connection(server_side, LOCAL, timeout=0.2)
        with pytest.raises(TimeoutError):
            conn.read_request()

    def test_trickling_body_hits_overall_deadline(self, pair):
        """timeout bounds the whole read, not each recv()."""
        server_side, client_side = pair
        client_side.sendall(b"POST /f HTTP/1.1\r\nContent-Length: 1000\r\n\r\n")
        trickler = Trickler(client_side)
        trickler.start()

        conn = Connection(server_side, LOCAL, timeout=0.5)
        started = time.monotonic()
        try:
            with pytest.raises(TimeoutError):
                conn.read_request()
        finally:
            trickler.stop()

        assert time.monotonic() - started < 1.5

    def test_repeated_content_length(self, pair):
        server_side, client_side = pair
        client_side.sendall(
            b"POST /f HTTP/1.1\r\nContent-Length: 3\r\nContent-Length: 3\r\n\r\nabc"
        )

        conn = Connection(server_side, LOCAL, timeout=2.0)
        assert conn.read_request().endswith(b"\r\n\r\nabc")

    def test_folded_header_before_content_length(self, pair):
        """The reader and the parser agree on header folding."""
        server_side, client_side = pair
        request = b"POST /f HTTP/1.1\r\nX-Note: one\r\n two\r\nContent-Length: 2\r\n\r\nhi"
        client_side.sendall(request)

        conn = Connection(server_side, LOCAL, timeout=2.0)
        assert conn.read_request() == request


class TestShortReadFraming:
    """Tests for the legacy reader."""

    def test_short_request(self, pair):
        server_side, client_side = pair
        client_side.sendall(b"GET /f HTTP/1.1\r\n\r\n")

        conn = Connection(server_side, LOCAL, framing="short-read", timeout=2.0)
        assert conn.read_request() == b"GET /f HTTP/1.1\r\n\r\n"

    def test_exact_chunk_multiple_waits_for_timeout(self, pair):
        """The legacy hang: a full final chunk looks like more is coming."""
        server_side, client_side = pair
        client_side.sendall(padded_request(64))

        conn = Connection(
            server_side, LOCAL, framing="short-read", chunk_size=64, timeout=0.3
        )
        with pytest.raises(TimeoutError):
            conn.read_request()

    def test_exact_chunk_multiple_ends_on_close(self, pair):
        server_side, client_side = pair
        request = padded_request(64)
        client_side.sendall(request)
        client_side.shutdown(socket.SHUT_WR)

        conn = Connection(
            server_side, LOCAL, framing="short-read", chunk_size=64, timeout=2.0
        )
        assert conn.read_request() == request


class TestSendAndClose:
    """Tests for send_response() and close()."""

    def test_send_then_close(self, pair):
        server_side, client_side = pair
        conn = Connection(server_side, LOCAL, timeout=2.0)

        with conn:
            assert conn.send_response(b"HTTP/1.1 200 OK\r\n") is True

        assert conn.state == ConnectionState.CLOSED
        client_side.settimeout(2.0)
        assert recv_all(client_side) == b"HTTP/1.1 200 OK\r\n"

    def test_send_to_closed_peer(self, pair, caplog):
        server_side, client_side = pair
        client_side.close()
        conn = Connection(server_side, LOCAL, timeout=2.0)

        with caplog.at_level(logging.WARNING, logger="fsbridge.core.connection"):
            ok = conn.send_response(b"x" * 100000)

        assert ok is False
        assert "Send to" in caplog.text
        conn.close()

    def test_close_is_idempotent(self, pair):
        server_side, _ = pair
        conn = Connection(server_side, LOCAL, timeout=2.0)

        conn.close()
        conn.close()
        assert conn.state == ConnectionState.CLOSED

    def test_close_drain_is_bounded(self, pair):
        """A peer that keeps sending cannot hold close() open."""
        server_side, client_side = pair
        trickler = Trickler(client_side)
        trickler.start()
        conn = Connection(server_side, LOCAL, timeout=0.5)

        started = time.monotonic()
        try:
            assert conn.send_response(b"HTTP/1.1 200 OK\r\n") is True
            conn.close()
        finally:
            trickler.stop()

        assert time.monotonic() - started < 1.5
        assert conn.state == ConnectionState.CLOSED

    def test_abort_does_not_drain(self, pair):
        server_side, client_side = pair
        trickler = Trickler(client_side)
        trickler.start()
        conn = Connection(server_side, LOCAL, timeout=5.0)

        started = time.monotonic()
        try:
            conn.abort()
        finally:
            trickler.stop()

        assert time.monotonic() - started < 0.25
        assert conn.state == ConnectionState.CLOSED
        conn.abort()
        conn.close()

    def test_abort_sends_nothing(self, pair):
        server_side, client_side = pair
        Connection(server_side, LOCAL).abort()

        client_side.settimeout(2.0)
        try:
            assert recv_all(client_side) == b""
        except ConnectionResetError:
            pass


class TestOriginGuard:
    """Tests for the loopback-only check."""

    @pytest.mark.parametrize("host", ["127.0.0.1", "::1", "::ffff:127.0.0.1"])
    def test_loopback_accepted(self, host):
        assert is_loopback_address(host) is True

    @pytest.mark.parametrize("host", [
        "10.0.0.5", "192.168.1.10", "127.0.0.2", "0.0.0.0", "::", "localhost", "",
    ])
    def test_other_addresses_rejected(self, host):
        assert is_loopback_address(host) is False

    def test_is_local_property(self, pair):
        server_side, _ = pair
        assert Connection(server_side, LOCAL).is_local is True
        assert Connection(server_side, ("10.0.0.5", 1234)).is_local is False

    def test_remote_peer_gets_zero_bytes(self, pair, config, caplog):
        """A non-loopback peer is closed without any response."""
        server_side, client_side = pair
        client_side.sendall(b"GET /etc/hosts HTTP/1.1\r\n\r\n")
        server = FileBridgeServer(config)
        conn = Connection(server_side, ("10.0.0.5", 1234), timeout=2.0)

        with caplog.at_level(logging.ERROR, logger="fsbridge.server"):
            server._process_connection(conn)

        assert conn.state == ConnectionState.CLOSED
        client_side.settimeout(2.0)
        assert recv_all(client_side) == b""
        assert "10.0.0.5" in caplog.text
