"""HTTP Input/Output operations."""

import logging
import socket
import time
import urllib.parse
from http import HTTPStatus
from typing import Optional, Tuple

from wikiserver.bootstrap.config import HEADER_DELIMITER
from wikiserver.domain.http_types import HttpRequest, HttpResponse
from wikiserver.domain.request_id import CorrelationLoggerAdapter

IO_LOGGER = CorrelationLoggerAdapter(logging.getLogger("wikiserver.io"), {})

CRLF = b"\r\n"
MAX_HEADER_BYTES = 64 * 1024
SUPPORTED_VERSIONS = {"HTTP/1.0", "HTTP/1.1"}
BODYLESS_STATUSES = {HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED}


class RequestEntityTooLarge(Exception):
    """Raised when a request body exceeds configured limits."""


def _remaining_seconds(deadline_ns: int) -> float:
    remaining_ns = deadline_ns - time.monotonic_ns()
    if remaining_ns <= 0:
        raise TimeoutError("Request deadline exceeded")
    return remaining_ns / 1_000_000_000


def _recv_with_deadline(client_socket: socket.socket, deadline_ns: int) -> bytes:
    """Receive data from socket with a deadline, raising TimeoutError if exceeded."""
    client_socket.settimeout(_remaining_seconds(deadline_ns))
    return client_socket.recv(4096)


def _sendall_with_deadline(
    client_socket: socket.socket, payload: bytes, deadline_ns: int
) -> None:
    """Send a payload, raising TimeoutError once the write deadline passes."""
    client_socket.settimeout(_remaining_seconds(deadline_ns))
    client_socket.sendall(payload)


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Convert raw header lines into a lowercase-keyed dictionary."""
    parsed = {}
    for line in lines:
        if not line:
            continue
        name, separator, value = line.partition(":")
        if not separator or not name or name != name.strip():
            raise ValueError(f"Malformed header line: {line!r}")
        parsed[name.lower()] = value.strip()
    return parsed


def parse_request_line(request_line: str) -> Tuple[str, str, str]:
    """Parse the HTTP method, decoded path and version from the request line."""
    try:
        method, target, version = request_line.split(" ", 2)
    except ValueError as exc:
        raise ValueError("Invalid request line") from exc
    if version not in SUPPORTED_VERSIONS:
        raise ValueError(f"Unsupported HTTP version {version!r}")
    if not method or not target:
        raise ValueError("Invalid request line")

    parsed_target = urllib.parse.urlsplit(target)
    path = urllib.parse.unquote(parsed_target.path) or "/"
    return method, path, version


def determine_content_length(
    method: str, headers: dict[str, str], max_body_bytes: int
) -> int:
    """Validate and return the declared Content-Length for the request."""
    header_value = headers.get("content-length")
    if method == "POST" and header_value is None:
        raise ValueError("Missing Content-Length")
    if header_value is None:
        return 0
    try:
        content_length = int(header_value)
    except ValueError as exc:
        raise ValueError("Invalid Content-Length") from exc
    if content_length < 0:
        raise ValueError("Negative Content-Length")
    if content_length > max_body_bytes:
        raise RequestEntityTooLarge
    return content_length


def _read_fixed_body(
    client_socket: socket.socket,
    buffer: bytes,
    length: int,
    deadline_ns: int,
) -> Tuple[Optional[bytes], bytes]:
    while len(buffer) < length:
        chunk = _recv_with_deadline(client_socket, deadline_ns)
        if not chunk:
            return None, b""
        buffer += chunk
    return buffer[:length], buffer[length:]


def _read_line(
    client_socket: socket.socket, buffer: bytes, deadline_ns: int
) -> Tuple[Optional[bytes], bytes]:
    while CRLF not in buffer:
        if len(buffer) > MAX_HEADER_BYTES:
            raise ValueError("Chunk header line too long")
        chunk = _recv_with_deadline(client_socket, deadline_ns)
        if not chunk:
            return None, b""
        buffer += chunk
    line, remainder = buffer.split(CRLF, 1)
    return line, remainder


def _read_chunked_body(
    client_socket: socket.socket,
    buffer: bytes,
    deadline_ns: int,
    max_body_bytes: int,
) -> Tuple[Optional[bytes], bytes]:
    """Decode a chunked request body, discarding any trailer fields."""
    chunks: list[bytes] = []
    total = 0
    remaining = buffer
    while True:
        size_line, remaining = _read_line(client_socket, remaining, deadline_ns)
        if size_line is None:
            return None, b""
        size_text = size_line.split(b";", 1)[0].strip()
        try:
            size = int(size_text, 16)
        except ValueError as exc:
            raise ValueError("Invalid chunk size") from exc
        if size < 0:
            raise ValueError("Invalid chunk size")
        if size == 0:
            break
        total += size
        if total > max_body_bytes:
            raise RequestEntityTooLarge
        data, remaining = _read_fixed_body(
            client_socket, remaining, size + len(CRLF), deadline_ns
        )
        if data is None:
            return None, b""
        if not data.endswith(CRLF):
            raise ValueError("Chunk is missing its terminator")
        chunks.append(data[:-2])
    while True:
        trailer, remaining = _read_line(client_socket, remaining, deadline_ns)
        if trailer is None:
            return None, b""
        if not trailer:
            break
    return b"".join(chunks), remaining


def receive_request(
    client_socket: socket.socket,
    buffer: bytes,
    deadline_ns: int,
    max_body_bytes: int,
    remote_addr: str = "",
) -> Tuple[Optional[HttpRequest], bytes]:
    """Read bytes from the socket until a complete request is available."""
    while HEADER_DELIMITER not in buffer:
        if len(buffer) > MAX_HEADER_BYTES:
            raise ValueError("Request header block too large")
        chunk = _recv_with_deadline(client_socket, deadline_ns)
        if not chunk:
            return None, b""
        buffer += chunk

    header_block, remainder = buffer.split(HEADER_DELIMITER, 1)
    header_lines = header_block.decode("latin-1").split("\r\n")
    method, path, version = parse_request_line(header_lines[0])
    headers = parse_headers(header_lines[1:])

    transfer_encoding = headers.get("transfer-encoding", "").lower()
    if transfer_encoding and transfer_encoding != "identity":
        if transfer_encoding != "chunked":
            raise ValueError(f"Unsupported Transfer-Encoding {transfer_encoding!r}")
        _send_continue_if_expected(client_socket, headers, deadline_ns)
        body, leftover = _read_chunked_body(
            client_socket, remainder, deadline_ns, max_body_bytes
        )
    else:
        content_length = determine_content_length(method, headers, max_body_bytes)
        if content_length:
            _send_continue_if_expected(client_socket, headers, deadline_ns)
        body, leftover = _read_fixed_body(
            client_socket, remainder, content_length, deadline_ns
        )
    if body is None:
        return None, b""

    if IO_LOGGER.logger.isEnabledFor(logging.DEBUG):
        IO_LOGGER.debug(
            "Parsed request",
            extra={"event": "request_parsed", "method": method, "route": path},
        )
    return HttpRequest(method, path, headers, body, remote_addr, version), leftover


def _send_continue_if_expected(
    client_socket: socket.socket, headers: dict[str, str], deadline_ns: int
) -> None:
    if headers.get("expect", "").lower() == "100-continue":
        _sendall_with_deadline(client_socket, b"HTTP/1.1 100 Continue\r\n\r\n", deadline_ns)


def send_response(
    client_socket: socket.socket,
    response: HttpResponse,
    deadline_ns: int,
    include_body: bool = True,
) -> None:
    """Serialize and send the HTTP response over the socket."""
    headers = dict(response.headers)
    bodyless = response.status in BODYLESS_STATUSES
    if response.use_chunked and not bodyless:
        headers["Transfer-Encoding"] = "chunked"
    elif not bodyless:
        headers["Content-Length"] = str(len(response.body))
    if response.close_connection:
        headers["Connection"] = "close"
    header_lines = [response.status_line]
    header_lines.extend(f"{name}: {value}" for name, value in headers.items())
    header_block = "\r\n".join(header_lines).encode("latin-1") + b"\r\n\r\n"

    if not include_body or bodyless:
        _sendall_with_deadline(client_socket, header_block, deadline_ns)
        _close_body_iter(response)
    elif response.use_chunked and response.body_iter is not None:
        _sendall_with_deadline(client_socket, header_block, deadline_ns)
        try:
            for chunk in response.body_iter:
                if not chunk:
                    continue
                size_line = f"{len(chunk):X}\r\n".encode()
                _sendall_with_deadline(
                    client_socket, size_line + chunk + CRLF, deadline_ns
                )
        finally:
            _close_body_iter(response)
        _sendall_with_deadline(client_socket, b"0\r\n\r\n", deadline_ns)
    else:
        _sendall_with_deadline(client_socket, header_block + response.body, deadline_ns)
    if IO_LOGGER.logger.isEnabledFor(logging.DEBUG):
        IO_LOGGER.debug(
            "Sent response",
            extra={
                "event": "response_sent",
                "status_code": response.status.value,
                "use_chunked": response.use_chunked,
            },
        )


def _close_body_iter(response: HttpResponse) -> None:
    close = getattr(response.body_iter, "close", None)
    if close is not None:
        close()
