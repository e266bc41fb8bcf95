"""Interrupt handling and the background shutdown sequence."""

import logging
import os
import signal
import threading
from typing import Callable

from wikiserver.domain.request_id import CorrelationLoggerAdapter
from wikiserver.lifecycle.state import ServerLifecycle

SIGNAL_LOGGER = CorrelationLoggerAdapter(logging.getLogger("wikiserver.signals"), {})


def install_interrupt_handler(quit_event: threading.Event) -> None:
    """Route SIGINT to ``quit_event``; no other signal is handled."""

    def interrupt_handler(signum: int, _frame) -> None:
        SIGNAL_LOGGER.info(
            "Received shutdown signal",
            extra={"event": "signal_received", "signal": signum},
        )
        quit_event.set()

    signal.signal(signal.SIGINT, interrupt_handler)


def fatal_exit(
    message: str, logger: logging.LoggerAdapter = SIGNAL_LOGGER, **extra
) -> None:
    """Log at CRITICAL and terminate immediately with exit code 1."""
    logger.critical(message, extra=extra)
    logging.shutdown()
    os._exit(1)  # pylint: disable=protected-access


def _shutdown_failed(timeout: float) -> None:
    fatal_exit(
        "Could not gracefully shutdown the server",
        event="shutdown_failed",
        shutdown_timeout=timeout,
    )


def start_shutdown_watcher(
    lifecycle: ServerLifecycle,
    quit_event: threading.Event,
    timeout: float,
    on_failure: Callable[[float], None] = _shutdown_failed,
) -> threading.Event:
    """Start the thread that drains the server once ``quit_event`` fires.

    The returned event is set after the server has shut down cleanly.
    """
    done = threading.Event()

    def watch() -> None:
        quit_event.wait()
        SIGNAL_LOGGER.info(
            "Server is shutting down", extra={"event": "server_shutting_down"}
        )
        if not lifecycle.shutdown(timeout):
            on_failure(timeout)
            return
        done.set()

    threading.Thread(target=watch, name="shutdown-watcher", daemon=True).start()
    return done
