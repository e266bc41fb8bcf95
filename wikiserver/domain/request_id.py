"""Request ID generation and log correlation using contextvars."""

import contextvars
import logging
import time
from typing import Any, MutableMapping, Optional

_correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)


def next_request_id() -> str:
    """Generate a request ID from the current nanosecond timestamp."""
    return str(time.time_ns())


def get_correlation_id() -> Optional[str]:
    """Retrieve the request ID bound to the current logging context."""
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Bind a request ID to the current logging context."""
    return _correlation_id_var.set(correlation_id)


def reset_correlation_id(token: contextvars.Token) -> None:
    """Restore the logging context to the value it held before ``token``."""
    _correlation_id_var.reset(token)


def clear_correlation_id() -> None:
    """Remove the request ID from the current logging context."""
    _correlation_id_var.set(None)


class CorrelationLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects the request ID and component into records."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        """Add correlation_id and component to the extra dict."""
        if "extra" not in kwargs:
            kwargs["extra"] = {}
        else:
            kwargs["extra"] = dict(kwargs["extra"])

        correlation_id = get_correlation_id()
        kwargs["extra"]["correlation_id"] = (
            correlation_id if correlation_id is not None else "-"
        )

        logger_name = self.logger.name
        if logger_name.startswith("wikiserver."):
            component = logger_name[len("wikiserver.") :]
        else:
            component = logger_name
        kwargs["extra"]["component"] = component

        return msg, kwargs
