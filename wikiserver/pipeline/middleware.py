"""Request middlewares and their composition.

A middleware takes the next handler and returns a handler wrapping it. The
first middleware passed to :func:`build_pipeline` is the outermost, so it
sees the request first and the response last::

    build_info -> tracing -> access_logging -> router
"""

import logging
from typing import Callable, Iterable, Union

from wikiserver.bootstrap.config import (
    LICENSE_HEADER,
    LICENSE_VALUE,
    REQUEST_ID_HEADER,
)
from wikiserver.domain.http_types import Handler, HttpRequest, HttpResponse
from wikiserver.domain.request_id import (
    CorrelationLoggerAdapter,
    reset_correlation_id,
    set_correlation_id,
)

Middleware = Callable[[Handler], Handler]

ACCESS_LOGGER = CorrelationLoggerAdapter(logging.getLogger("wikiserver.access"), {})


def build_info() -> Middleware:
    """Stamp the license header on every response."""

    def middleware(next_handler: Handler) -> Handler:
        def handler(request: HttpRequest) -> HttpResponse:
            response = next_handler(request)
            response.headers[LICENSE_HEADER] = LICENSE_VALUE
            return response

        return handler

    return middleware


def tracing(next_request_id: Callable[[], str]) -> Middleware:
    """Tag the request with an inbound or freshly generated request ID."""

    def middleware(next_handler: Handler) -> Handler:
        def handler(request: HttpRequest) -> HttpResponse:
            request_id = request.header(REQUEST_ID_HEADER)
            if not request_id:
                request_id = next_request_id()
            request.context.request_id = request_id
            token = set_correlation_id(request_id)
            try:
                response = next_handler(request)
            finally:
                reset_correlation_id(token)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response

        return handler

    return middleware


def access_logging(
    logger: Union[logging.Logger, logging.LoggerAdapter] = ACCESS_LOGGER,
) -> Middleware:
    """Log one line per request once the wrapped handler returns or raises."""

    def middleware(next_handler: Handler) -> Handler:
        def handler(request: HttpRequest) -> HttpResponse:
            status_code = None
            try:
                response = next_handler(request)
                status_code = response.status.value
                return response
            finally:
                request_id = request.context.request_id or "unknown"
                logger.info(
                    "%s %s %s %s %s",
                    request_id,
                    request.method,
                    request.path,
                    request.remote_addr,
                    request.user_agent,
                    extra={
                        "event": "request_complete",
                        "method": request.method,
                        "route": request.path,
                        "client": request.remote_addr,
                        "user_agent": request.user_agent,
                        "status_code": status_code,
                    },
                )

        return handler

    return middleware


def build_pipeline(handler: Handler, middlewares: Iterable[Middleware]) -> Handler:
    """Wrap ``handler`` so the first middleware listed runs outermost."""
    for middleware in reversed(list(middlewares)):
        handler = middleware(handler)
    return handler


def default_middlewares(next_request_id: Callable[[], str]) -> list[Middleware]:
    """Return the standard chain: build info, tracing, then access logging."""
    return [build_info(), tracing(next_request_id), access_logging()]
