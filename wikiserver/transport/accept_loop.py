"""Main connection acceptance loop."""

import logging
import socket
import threading

from wikiserver.domain.request_id import CorrelationLoggerAdapter
from wikiserver.transport.context import WorkerContext
from wikiserver.transport.worker import handle_client

ACCEPT_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("wikiserver.transport.accept"), {}
)


def _handle_accepted_client(
    client_socket: socket.socket,
    client_address: tuple,
    context: WorkerContext,
) -> None:
    """Hand a newly accepted connection to its own worker thread."""
    if ACCEPT_LOGGER.logger.isEnabledFor(logging.DEBUG):
        ACCEPT_LOGGER.debug(
            "Client connection accepted",
            extra={
                "event": "client_accepted",
                "client": f"{client_address[0]}:{client_address[1]}",
            },
        )
    thread = threading.Thread(
        target=handle_client,
        args=(client_socket, client_address, context),
        daemon=False,
    )
    # Registered before start so shutdown never misses a starting worker.
    context.lifecycle.register_worker(thread)
    thread.start()


def run_server(server_socket: socket.socket, context: WorkerContext) -> None:
    """Accept connections until the lifecycle asks the server to stop."""
    lifecycle = context.lifecycle
    try:
        while not lifecycle.should_stop():
            try:
                client_socket, client_address = server_socket.accept()
            except socket.timeout:
                continue
            except OSError as error:
                if lifecycle.should_stop():
                    break
                ACCEPT_LOGGER.error(
                    "Socket accept failed",
                    extra={"event": "accept_error", "error_type": type(error).__name__},
                )
                continue

            if lifecycle.should_stop():
                client_socket.close()
                break
            _handle_accepted_client(client_socket, client_address, context)
    finally:
        server_socket.close()
        lifecycle.mark_listener_closed()
        ACCEPT_LOGGER.info(
            "Listener closed",
            extra={"event": "listener_closed"},
        )
