"""Unit tests for request parsing and response serialization."""

import socket
import threading
import time
from http import HTTPStatus

import pytest

from wikiserver.domain.http_types import HttpResponse
from wikiserver.pipeline.io import (
    RequestEntityTooLarge,
    determine_content_length,
    parse_headers,
    parse_request_line,
    receive_request,
    send_response,
)


def _deadline(seconds=2.0):
    return time.monotonic_ns() + int(seconds * 1_000_000_000)


@pytest.fixture(name="sockets")
def fixture_sockets():
    """A connected server/client socket pair."""
    server, client = socket.socketpair()
    yield server, client
    server.close()
    client.close()


def _read_all(sock):
    sock.settimeout(2.0)
    data = b""
    while True:
        chunk = sock.recv(4096)
        if not chunk:
            return data
        data += chunk


class TestParseRequestLine:
    """Tests for parse_request_line."""

    def test_decodes_path_and_drops_query(self):
        """The target is percent-decoded and the query string discarded."""
        assert parse_request_line("GET /a%20b?x=1 HTTP/1.1") == (
            "GET",
            "/a b",
            "HTTP/1.1",
        )

    def test_accepts_http_1_0(self):
        """HTTP/1.0 requests are understood."""
        assert parse_request_line("POST / HTTP/1.0")[2] == "HTTP/1.0"

    @pytest.mark.parametrize(
        "line", ["GET /", "GET / HTTP/2.0", "", "GET  HTTP/1.1", "garbage"]
    )
    def test_rejects_malformed_lines(self, line):
        """Malformed request lines raise ValueError."""
        with pytest.raises(ValueError):
            parse_request_line(line)


class TestParseHeaders:
    """Tests for parse_headers."""

    def test_lowercases_names_and_strips_values(self):
        """Header names are case-insensitive and values trimmed."""
        assert parse_headers(["Content-Type:  text/html ", "X-Request-Id: 7"]) == {
            "content-type": "text/html",
            "x-request-id": "7",
        }

    def test_skips_empty_lines(self):
        """Blank lines carry no header."""
        assert parse_headers(["", "Host: a"]) == {"host": "a"}

    @pytest.mark.parametrize("line", ["no-separator", ": value", "Bad Name : v"])
    def test_rejects_malformed_lines(self, line):
        """Lines without a proper name raise ValueError."""
        with pytest.raises(ValueError):
            parse_headers([line])


class TestDetermineContentLength:
    """Tests for determine_content_length."""

    def test_defaults_to_zero_for_get(self):
        """Bodiless requests need no Content-Length."""
        assert determine_content_length("GET", {}, 100) == 0

    def test_post_requires_length(self):
        """POST without a length or chunked encoding is rejected."""
        with pytest.raises(ValueError):
            determine_content_length("POST", {}, 100)

    @pytest.mark.parametrize("value", ["abc", "-1"])
    def test_rejects_invalid_values(self, value):
        """Non-numeric and negative lengths are rejected."""
        with pytest.raises(ValueError):
            determine_content_length("POST", {"content-length": value}, 100)

    def test_enforces_limit(self):
        """Lengths above the limit raise RequestEntityTooLarge."""
        with pytest.raises(RequestEntityTooLarge):
            determine_content_length("POST", {"content-length": "101"}, 100)
        assert determine_content_length("POST", {"content-length": "100"}, 100) == 100


class TestReceiveRequest:
    """Tests for receive_request over a socket pair."""

    def test_reads_fixed_length_body_and_keeps_leftover(self, sockets):
        """Bytes after the body are returned for the next request."""
        server, client = sockets
        client.sendall(
            b"POST /upload HTTP/1.1\r\nContent-Length: 5\r\n"
            b"User-Agent: tester\r\n\r\nhelloGET / HTTP/1.1\r\n\r\n"
        )

        request, leftover = receive_request(
            server, b"", _deadline(), 100, remote_addr="1.2.3.4:5"
        )

        assert request.method == "POST"
        assert request.path == "/upload"
        assert request.body == b"hello"
        assert request.user_agent == "tester"
        assert request.remote_addr == "1.2.3.4:5"
        assert leftover == b"GET / HTTP/1.1\r\n\r\n"

    def test_uses_existing_buffer(self, sockets):
        """A fully buffered request needs no socket reads."""
        server, _client = sockets

        request, leftover = receive_request(
            server, b"GET /healthz HTTP/1.1\r\nHost: x\r\n\r\n", _deadline(), 100
        )

        assert request.path == "/healthz"
        assert request.header("host") == "x"
        assert leftover == b""

    def test_decodes_chunked_body(self, sockets):
        """Chunked bodies are reassembled and trailers discarded."""
        server, client = sockets
        client.sendall(
            b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n"
            b"5;ext=1\r\nhello\r\n6\r\n world\r\n0\r\nX-Trailer: y\r\n\r\n"
        )

        request, leftover = receive_request(server, b"", _deadline(), 100)

        assert request.body == b"hello world"
        assert leftover == b""

    def test_chunked_body_over_limit(self, sockets):
        """Chunked bodies are also bounded by the size limit."""
        server, client = sockets
        client.sendall(
            b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n"
            b"A\r\n0123456789\r\n0\r\n\r\n"
        )

        with pytest.raises(RequestEntityTooLarge):
            receive_request(server, b"", _deadline(), 5)

    def test_rejects_unknown_transfer_encoding(self, sockets):
        """Only chunked transfer encoding is understood."""
        server, client = sockets
        client.sendall(b"POST / HTTP/1.1\r\nTransfer-Encoding: gzip\r\n\r\n")

        with pytest.raises(ValueError):
            receive_request(server, b"", _deadline(), 100)

    def test_sends_interim_continue(self, sockets):
        """Expect: 100-continue is answered before the body is read."""
        server, client = sockets
        client.sendall(
            b"POST / HTTP/1.1\r\nContent-Length: 3\r\nExpect: 100-continue\r\n\r\n"
        )
        client.settimeout(2.0)

        def send_body_after_continue():
            interim = client.recv(4096)
            client.sendall(b"abc")
            return interim

        result = {}
        thread = threading.Thread(
            target=lambda: result.setdefault("interim", send_body_after_continue())
        )
        thread.start()
        request, _leftover = receive_request(server, b"", _deadline(), 100)
        thread.join()

        assert result["interim"] == b"HTTP/1.1 100 Continue\r\n\r\n"
        assert request.body == b"abc"

    def test_returns_none_when_peer_disconnects(self, sockets):
        """A truncated request yields None."""
        server, client = sockets
        client.sendall(b"POST / HTTP/1.1\r\nContent-Length: 10\r\n\r\nabc")
        client.shutdown(socket.SHUT_WR)

        request, leftover = receive_request(server, b"", _deadline(), 100)

        assert request is None
        assert leftover == b""

    def test_times_out_on_slow_client(self, sockets):
        """A request not completed before its deadline raises TimeoutError."""
        server, client = sockets
        client.sendall(b"GET / HTTP/1.1\r\n")

        with pytest.raises((TimeoutError, socket.timeout)):
            receive_request(server, b"", _deadline(0.2), 100)


class TestSendResponse:
    """Tests for send_response."""

    def test_fixed_body_has_content_length(self, sockets):
        """Plain responses are framed with Content-Length."""
        server, client = sockets
        response = HttpResponse(
            HTTPStatus.NOT_FOUND, {"Content-Type": "text/plain"}, b"Not Found\n"
        )
        response.close_connection = True

        send_response(server, response, _deadline())
        server.close()

        raw = _read_all(client)
        assert raw.startswith(b"HTTP/1.1 404 Not Found\r\n")
        assert b"Content-Length: 10\r\n" in raw
        assert b"Connection: close\r\n" in raw
        assert raw.endswith(b"\r\n\r\nNot Found\n")

    def test_no_content_omits_length(self, sockets):
        """204 responses carry neither a length nor a body."""
        server, client = sockets

        send_response(server, HttpResponse(HTTPStatus.NO_CONTENT, {}), _deadline())
        server.close()

        raw = _read_all(client)
        assert raw == b"HTTP/1.1 204 No Content\r\n\r\n"

    def test_chunked_body_is_framed_and_iterator_closed(self, sockets):
        """Streaming responses use chunked framing."""
        server, client = sockets
        closed = []

        def body():
            try:
                yield b"abc"
                yield b""
                yield b"defgh"
            finally:
                closed.append(True)

        response = HttpResponse(
            HTTPStatus.OK, {}, body_iter=body(), use_chunked=True
        )

        send_response(server, response, _deadline())
        server.close()

        raw = _read_all(client)
        assert b"Transfer-Encoding: chunked\r\n" in raw
        assert raw.endswith(b"\r\n\r\n3\r\nabc\r\n5\r\ndefgh\r\n0\r\n\r\n")
        assert closed == [True]

    def test_head_omits_body(self, sockets):
        """include_body=False sends only the header block."""
        server, client = sockets
        closed = []

        def body():
            try:
                yield b"payload"
            finally:
                closed.append(True)

        response = HttpResponse(
            HTTPStatus.OK, {}, body_iter=body(), use_chunked=True
        )
        iterator = response.body_iter
        next(iterator)

        send_response(server, response, _deadline(), include_body=False)
        server.close()

        raw = _read_all(client)
        assert raw.endswith(b"\r\n\r\n")
        assert b"payload" not in raw
        assert closed == [True]
