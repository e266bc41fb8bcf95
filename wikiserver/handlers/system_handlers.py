"""Health check handler."""

import logging

from wikiserver.domain.http_types import HttpRequest, HttpResponse
from wikiserver.domain.request_id import CorrelationLoggerAdapter
from wikiserver.domain.response_builders import healthz_response
from wikiserver.lifecycle.state import HealthFlag

SYSTEM_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("wikiserver.handlers.system"), {}
)


def handle_healthz(request: HttpRequest, health: HealthFlag) -> HttpResponse:
    """Handle /healthz requests with the current health flag."""
    is_healthy = health.is_healthy()
    if SYSTEM_LOGGER.logger.isEnabledFor(logging.DEBUG):
        SYSTEM_LOGGER.debug(
            "Health check performed",
            extra={"event": "healthz_check", "healthy": is_healthy},
        )
    return healthz_response(is_healthy, request)
