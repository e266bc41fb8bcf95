"""Pure HTTP response builders."""

from http import HTTPStatus
from typing import Iterable, Optional

from wikiserver.domain.http_types import HttpRequest, HttpResponse, should_close

NOSNIFF_HEADERS = {"X-Content-Type-Options": "nosniff"}


def _closes(request: Optional[HttpRequest]) -> bool:
    return should_close(request) if request is not None else True


def error_response(
    status: HTTPStatus,
    request: Optional[HttpRequest],
    message: Optional[str] = None,
) -> HttpResponse:
    """Return a plain-text response whose body is the message or status phrase."""
    payload = f"{message if message is not None else status.phrase}\n".encode()
    headers = {"Content-Type": "text/plain; charset=utf-8", **NOSNIFF_HEADERS}
    return HttpResponse(status, headers, payload, _closes(request))


def empty_response(
    status: HTTPStatus,
    request: Optional[HttpRequest],
    headers: Optional[dict[str, str]] = None,
) -> HttpResponse:
    """Return a response with no body."""
    return HttpResponse(status, dict(headers or {}), b"", _closes(request))


def streaming_response(
    request: HttpRequest,
    content_type: str,
    body_iter: Iterable[bytes],
    headers: Optional[dict[str, str]] = None,
) -> HttpResponse:
    """Return a 200 response whose body is sent with chunked encoding."""
    return HttpResponse(
        HTTPStatus.OK,
        {"Content-Type": content_type, **(headers or {})},
        b"",
        should_close(request),
        body_iter=body_iter,
        use_chunked=True,
    )


def not_found_response(request: Optional[HttpRequest]) -> HttpResponse:
    """Return a 404 response reusing the connection preference."""
    return error_response(HTTPStatus.NOT_FOUND, request)


def bad_request_response(request: Optional[HttpRequest]) -> HttpResponse:
    """Produce a 400 response honoring the caller's connection preference."""
    return error_response(HTTPStatus.BAD_REQUEST, request)


def unauthorized_response(request: HttpRequest) -> HttpResponse:
    """Produce a 401 response for rejected upload credentials."""
    return error_response(HTTPStatus.UNAUTHORIZED, request)


def internal_error_response(
    request: Optional[HttpRequest], message: Optional[str] = None
) -> HttpResponse:
    """Produce a 500 response; the connection is closed when no request parsed."""
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, request, message)


def entity_too_large_response() -> HttpResponse:
    """Produce a 413 response that always closes the connection."""
    return error_response(HTTPStatus.REQUEST_ENTITY_TOO_LARGE, None)


def healthz_response(is_healthy: bool, request: HttpRequest) -> HttpResponse:
    """Produce a health check response based on the health flag."""
    if is_healthy:
        return empty_response(HTTPStatus.NO_CONTENT, request)
    return empty_response(HTTPStatus.SERVICE_UNAVAILABLE, request)
