"""Serving and replacing the wiki document."""

import logging
import mimetypes
from http import HTTPStatus
from pathlib import Path
from typing import BinaryIO, Iterator

from wikiserver.bootstrap.config import CREDENTIALS_FIELD, DOCUMENT_FIELD
from wikiserver.domain.credentials import credentials_match, parse_upload_plugin
from wikiserver.domain.http_types import HttpRequest, HttpResponse
from wikiserver.domain.multipart import MultipartError, parse_multipart_form
from wikiserver.domain.request_id import CorrelationLoggerAdapter
from wikiserver.domain.response_builders import (
    NOSNIFF_HEADERS,
    bad_request_response,
    empty_response,
    internal_error_response,
    not_found_response,
    streaming_response,
    unauthorized_response,
)

DOCUMENT_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("wikiserver.handlers.document"), {}
)


def stream_file(file_handle: BinaryIO, chunk_size: int = 65536) -> Iterator[bytes]:
    """Yield an open file in fixed-size chunks, closing it when exhausted."""
    with file_handle:
        while True:
            chunk = file_handle.read(chunk_size)
            if not chunk:
                break
            yield chunk


def _content_type_for_path(filepath: Path) -> str:
    mime_type, _ = mimetypes.guess_type(filepath.as_posix())
    return mime_type or "application/octet-stream"


def serve_document(request: HttpRequest, document_path: Path) -> HttpResponse:
    """Stream the current document, or 404 when it cannot be opened."""
    try:
        file_handle = open(document_path, "rb")  # pylint: disable=consider-using-with
    except OSError as error:
        DOCUMENT_LOGGER.info(
            "Document not available",
            extra={
                "event": "document_not_found",
                "path": document_path.as_posix(),
                "error_type": type(error).__name__,
            },
        )
        return not_found_response(request)
    if DOCUMENT_LOGGER.logger.isEnabledFor(logging.DEBUG):
        DOCUMENT_LOGGER.debug(
            "Document read started",
            extra={"event": "document_read_started", "path": document_path.as_posix()},
        )
    return streaming_response(
        request,
        _content_type_for_path(document_path),
        stream_file(file_handle),
        NOSNIFF_HEADERS,
    )


def _reject(request: HttpRequest, reason: str) -> HttpResponse:
    DOCUMENT_LOGGER.warning(
        "Upload rejected",
        extra={"event": "upload_rejected", "reason": reason},
    )
    return bad_request_response(request)


def save_document(request: HttpRequest, document_path: Path) -> HttpResponse:
    """Authenticate an upload and overwrite the document with it."""
    content_type = request.header("content-type")
    if not content_type.startswith("multipart/form-data;"):
        return _reject(request, "content_type")
    try:
        form = parse_multipart_form(request.body, content_type)
    except MultipartError as error:
        return _reject(request, str(error))

    upload_plugin = form.value(CREDENTIALS_FIELD)
    if not upload_plugin:
        return _reject(request, "missing_credentials")
    if not credentials_match(parse_upload_plugin(upload_plugin)):
        DOCUMENT_LOGGER.warning(
            "Upload credentials rejected", extra={"event": "upload_unauthorized"}
        )
        return unauthorized_response(request)

    upload = form.files.get(DOCUMENT_FIELD)
    if upload is None:
        return _reject(request, "missing_userfile")

    try:
        # Truncates in place; concurrent readers may see a partial document.
        with open(document_path, "wb") as file_handle:
            file_handle.write(upload.data)
    except OSError as error:
        DOCUMENT_LOGGER.error(
            "Unable to save document",
            extra={
                "event": "document_write_failed",
                "path": document_path.as_posix(),
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )
        return internal_error_response(request, "Unable to save wiki")

    DOCUMENT_LOGGER.info(
        "Document replaced",
        extra={
            "event": "document_write_complete",
            "path": document_path.as_posix(),
            "bytes_in": len(upload.data),
        },
    )
    return empty_response(HTTPStatus.OK, request, NOSNIFF_HEADERS)


def handle_document(request: HttpRequest, document_path: Path) -> HttpResponse:
    """Handle the root endpoint; every other path is not found."""
    if request.path != "/":
        return not_found_response(request)
    if request.method == "GET":
        return serve_document(request, document_path)
    if request.method == "POST":
        return save_document(request, document_path)
    DOCUMENT_LOGGER.warning(
        "Unsupported method",
        extra={"event": "method_rejected", "method": request.method},
    )
    return bad_request_response(request)
