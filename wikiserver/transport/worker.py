"""Worker thread logic for handling individual client connections."""

import logging
import socket
import threading
import time
from typing import Optional

from wikiserver.bootstrap.config import (
    LICENSE_HEADER,
    LICENSE_VALUE,
    REQUEST_ID_HEADER,
)
from wikiserver.domain.http_types import HttpRequest, HttpResponse, should_close
from wikiserver.domain.request_id import (
    CorrelationLoggerAdapter,
    clear_correlation_id,
    next_request_id,
)
from wikiserver.domain.response_builders import (
    bad_request_response,
    entity_too_large_response,
    internal_error_response,
)
from wikiserver.lifecycle.state import ServerLifecycle
from wikiserver.pipeline.io import RequestEntityTooLarge, receive_request, send_response
from wikiserver.transport.context import WorkerContext

WORKER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("wikiserver.transport.worker"), {}
)

IDLE_POLL_SECONDS = 0.25


def _deadline_ns(seconds: float) -> int:
    return time.monotonic_ns() + int(seconds * 1_000_000_000)


def _await_request_start(
    client_socket: socket.socket,
    buffer: bytes,
    timeout: float,
    lifecycle: ServerLifecycle,
) -> Optional[bytes]:
    """Wait for the first bytes of the next request.

    Returns the buffer once data is available, or None when the peer hung up,
    the wait timed out or the server started shutting down.
    """
    if buffer:
        return buffer
    deadline = time.monotonic() + timeout
    while not lifecycle.should_stop():
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None
        client_socket.settimeout(min(IDLE_POLL_SECONDS, remaining))
        try:
            chunk = client_socket.recv(4096)
        except socket.timeout:
            continue
        return chunk or None
    return None


def _stamp_transport_headers(
    response: HttpResponse, request: Optional[HttpRequest] = None
) -> HttpResponse:
    """Add the headers the middleware chain would have set to a transport error."""
    request_id = None
    if request is not None:
        request_id = request.context.request_id or request.header(REQUEST_ID_HEADER)
    response.headers[LICENSE_HEADER] = LICENSE_VALUE
    response.headers[REQUEST_ID_HEADER] = request_id or next_request_id()
    return response


def _read_request(
    client_socket: socket.socket,
    buffer: bytes,
    context: WorkerContext,
    client_addr_str: str,
) -> tuple[Optional[HttpRequest], bytes, bool]:
    """Read a request, answering malformed or oversized ones directly."""
    config = context.config
    read_deadline = _deadline_ns(config.read_timeout)
    try:
        request, buffer = receive_request(
            client_socket, buffer, read_deadline, config.max_body_bytes, client_addr_str
        )
    except RequestEntityTooLarge:
        WORKER_LOGGER.warning(
            "Request body size exceeded limit",
            extra={
                "event": "body_size_exceeded",
                "client": client_addr_str,
                "limit": config.max_body_bytes,
            },
        )
        response = _stamp_transport_headers(entity_too_large_response())
        send_response(client_socket, response, _deadline_ns(config.write_timeout))
        return None, b"", True
    except ValueError as error:
        WORKER_LOGGER.warning(
            "Malformed request received",
            extra={
                "event": "malformed_request",
                "client": client_addr_str,
                "error": str(error),
            },
        )
        response = _stamp_transport_headers(bad_request_response(None))
        send_response(client_socket, response, _deadline_ns(config.write_timeout))
        return None, b"", True

    if request is None:
        if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            WORKER_LOGGER.debug(
                "Client disconnected during request",
                extra={"event": "client_disconnected", "client": client_addr_str},
            )
        return None, buffer, True
    return request, buffer, False


def _dispatch(request: HttpRequest, context: WorkerContext) -> HttpResponse:
    try:
        return context.handler(request)
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unhandled error in request handler",
            extra={
                "event": "handler_error",
                "client": request.remote_addr,
                "route": request.path,
                "error_type": type(error).__name__,
            },
            exc_info=True,
        )
        return _stamp_transport_headers(internal_error_response(None), request)


def _process_request(
    request: HttpRequest,
    context: WorkerContext,
    client_socket: socket.socket,
) -> bool:
    """Run the handler chain and send its response; return True to close."""
    write_deadline = _deadline_ns(context.config.write_timeout)
    response = _dispatch(request, context)
    keep_alive = (
        not response.close_connection
        and not should_close(request)
        and context.lifecycle.keep_alives_enabled()
    )
    response.close_connection = not keep_alive
    send_response(
        client_socket,
        response,
        write_deadline,
        include_body=request.method != "HEAD",
    )
    return not keep_alive


def _close_socket(client_socket: socket.socket) -> None:
    try:
        client_socket.shutdown(socket.SHUT_WR)
    except OSError:
        pass
    client_socket.close()


def handle_client(
    client_socket: socket.socket,
    client_address: tuple,
    context: WorkerContext,
) -> None:
    """Process requests on a client socket until the connection is closed."""
    buffer = b""
    lifecycle = context.lifecycle
    client_addr_str = f"{client_address[0]}:{client_address[1]}"
    wait_timeout = context.config.read_timeout

    try:
        while True:
            pending = _await_request_start(
                client_socket, buffer, wait_timeout, lifecycle
            )
            if pending is None:
                break
            wait_timeout = context.config.idle_timeout

            request, buffer, should_terminate = _read_request(
                client_socket, pending, context, client_addr_str
            )
            if should_terminate or request is None:
                break

            if _process_request(request, context, client_socket):
                break
    except (ConnectionError, TimeoutError, OSError) as error:
        WORKER_LOGGER.info(
            "Client connection ended with error",
            extra={
                "event": "connection_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
        )
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unexpected error in worker",
            extra={
                "event": "worker_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
                "error": str(error),
            },
            exc_info=True,
        )
    finally:
        lifecycle.cleanup_worker(threading.current_thread())
        _close_socket(client_socket)
        if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            WORKER_LOGGER.debug(
                "Socket closed",
                extra={"event": "socket_closed", "client": client_addr_str},
            )
        clear_correlation_id()
