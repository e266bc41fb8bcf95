"""Request routing logic."""

import logging
from pathlib import Path

from wikiserver.domain.http_types import Handler, HttpRequest, HttpResponse
from wikiserver.domain.request_id import CorrelationLoggerAdapter
from wikiserver.handlers.document_handler import handle_document
from wikiserver.handlers.system_handlers import handle_healthz
from wikiserver.lifecycle.state import HealthFlag

ROUTER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("wikiserver.pipeline.router"), {}
)

HEALTHZ_PATH = "/healthz"


def route_request(
    request: HttpRequest, document_path: Path, health: HealthFlag
) -> HttpResponse:
    """Route the request to the health or document handler."""
    if request.path == HEALTHZ_PATH:
        route = HEALTHZ_PATH
    else:
        route = "/"
    if ROUTER_LOGGER.logger.isEnabledFor(logging.DEBUG):
        ROUTER_LOGGER.debug(
            "Route matched", extra={"event": "route_matched", "route": route}
        )
    if route == HEALTHZ_PATH:
        return handle_healthz(request, health)
    # The document handler is the catch-all and rejects paths other than "/".
    return handle_document(request, document_path)


def build_router(document_path: Path, health: HealthFlag) -> Handler:
    """Bind the router to its document path and health flag."""

    def router(request: HttpRequest) -> HttpResponse:
        return route_request(request, document_path, health)

    return router
