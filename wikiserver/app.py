"""Process entrypoint wiring the server together."""

import logging
import sys
import threading
from pathlib import Path
from typing import Optional

from wikiserver.bootstrap.config import (
    ServerConfig,
    load_build_info,
    parse_cli_args,
)
from wikiserver.bootstrap.logging_setup import configure_logging
from wikiserver.bootstrap.socket_factory import create_server_socket
from wikiserver.domain.http_types import Handler
from wikiserver.domain.request_id import CorrelationLoggerAdapter, next_request_id
from wikiserver.lifecycle.signals import (
    fatal_exit,
    install_interrupt_handler,
    start_shutdown_watcher,
)
from wikiserver.lifecycle.state import HealthFlag, ServerLifecycle
from wikiserver.pipeline.middleware import build_pipeline, default_middlewares
from wikiserver.pipeline.router import build_router
from wikiserver.transport.accept_loop import run_server
from wikiserver.transport.context import WorkerContext

SERVER_LOGGER = CorrelationLoggerAdapter(logging.getLogger("wikiserver.server"), {})


def build_handler(document_path: Path, health: HealthFlag) -> Handler:
    """Compose the middleware chain around the router."""
    return build_pipeline(
        build_router(document_path, health), default_middlewares(next_request_id)
    )


def main(argv: Optional[list[str]] = None) -> int:
    """Run the server until an interrupt drains it; return the exit code."""
    args = parse_cli_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.log_level, args.log_destination, args.log_format == "json")

    build = load_build_info()
    SERVER_LOGGER.info(
        "Server is starting...",
        extra={
            "event": "server_starting",
            "listen_addr": args.listen_addr,
            "document": args.document,
            "commit": build.commit,
            "build_date": build.date,
        },
    )

    config = ServerConfig()
    lifecycle = ServerLifecycle()
    context = WorkerContext(
        handler=build_handler(Path(args.document), lifecycle.health),
        lifecycle=lifecycle,
        config=config,
    )

    quit_event = threading.Event()
    install_interrupt_handler(quit_event)
    done = start_shutdown_watcher(lifecycle, quit_event, config.shutdown_timeout)

    try:
        server_socket = create_server_socket(args.listen_addr)
    except (OSError, ValueError) as error:
        fatal_exit(
            f"Could not listen on {args.listen_addr}",
            SERVER_LOGGER,
            event="listen_failed",
            listen_addr=args.listen_addr,
            error_type=type(error).__name__,
            error=str(error),
        )
        return 1

    host, port = server_socket.getsockname()[:2]
    SERVER_LOGGER.info(
        f"Server is ready to handle requests at {args.listen_addr}",
        extra={"event": "server_listening", "host": host, "port": port},
    )
    lifecycle.mark_serving()
    run_server(server_socket, context)

    done.wait()
    lifecycle.mark_stopped()
    SERVER_LOGGER.info("Server stopped", extra={"event": "server_stopped"})
    return 0
