"""Listening socket creation."""

import logging
import socket

from wikiserver.bootstrap.config import parse_listen_addr
from wikiserver.domain.request_id import CorrelationLoggerAdapter

SOCKET_LOGGER = CorrelationLoggerAdapter(logging.getLogger("wikiserver.socket"), {})

ACCEPT_POLL_SECONDS = 0.5


def create_server_socket(listen_addr: str) -> socket.socket:
    """Bind and listen on ``listen_addr``; bind errors propagate to the caller."""
    host, port = parse_listen_addr(listen_addr)
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    server_socket = socket.create_server((host, port), family=family)
    server_socket.settimeout(ACCEPT_POLL_SECONDS)
    bound_host, bound_port = server_socket.getsockname()[:2]
    SOCKET_LOGGER.debug(
        "Listening socket bound",
        extra={"event": "socket_bound", "host": bound_host, "port": bound_port},
    )
    return server_socket
