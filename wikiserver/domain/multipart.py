"""Minimal multipart/form-data parsing for document uploads."""

import re
from dataclasses import dataclass, field

_BOUNDARY_RE = re.compile(r'boundary=(?:"([^"]+)"|([^;]+))', re.IGNORECASE)
_NAME_RE = re.compile(r'(?:^|;)\s*name="([^"]*)"', re.IGNORECASE)
_FILENAME_RE = re.compile(r'(?:^|;)\s*filename="([^"]*)"', re.IGNORECASE)


class MultipartError(ValueError):
    """Raised when a multipart body cannot be parsed."""


@dataclass
class UploadedFile:
    """A file part of a multipart form."""

    filename: str
    content_type: str
    data: bytes


@dataclass
class MultipartForm:
    """Text fields and file parts of a parsed multipart form."""

    fields: dict[str, str] = field(default_factory=dict)
    files: dict[str, UploadedFile] = field(default_factory=dict)

    def value(self, name: str) -> str:
        """Return a text field, or an empty string when it is absent."""
        return self.fields.get(name, "")


def extract_boundary(content_type: str) -> str:
    """Return the boundary parameter of a multipart content type."""
    match = _BOUNDARY_RE.search(content_type)
    if match is None:
        raise MultipartError("Missing multipart boundary")
    boundary = (match.group(1) or match.group(2) or "").strip()
    if not boundary:
        raise MultipartError("Empty multipart boundary")
    return boundary


def _parse_part_headers(head: bytes) -> dict[str, str]:
    headers = {}
    for line in head.decode("utf-8", errors="replace").split("\r\n"):
        if ":" not in line:
            continue
        name, value = line.split(":", 1)
        headers[name.strip().lower()] = value.strip()
    return headers


def parse_multipart_form(body: bytes, content_type: str) -> MultipartForm:
    """Split a multipart/form-data body into text fields and files."""
    delimiter = b"\r\n--" + extract_boundary(content_type).encode("latin-1")
    # the first delimiter line has no preceding CRLF
    segments = (b"\r\n" + body).split(delimiter)
    if len(segments) < 2:
        raise MultipartError("Multipart body does not contain the boundary")
    if not segments[-1].startswith(b"--"):
        raise MultipartError("Multipart body is missing the closing boundary")

    form = MultipartForm()
    # segments[0] is the preamble and segments[-1] the epilogue
    for segment in segments[1:-1]:
        _, line_end, part = segment.partition(b"\r\n")
        if not line_end:
            raise MultipartError("Malformed multipart delimiter line")
        if part.startswith(b"\r\n"):
            head, data = b"", part[2:]
        else:
            head, separator, data = part.partition(b"\r\n\r\n")
            if not separator:
                raise MultipartError("Multipart part is missing its header block")

        headers = _parse_part_headers(head)
        disposition = headers.get("content-disposition", "")
        name_match = _NAME_RE.search(disposition)
        if name_match is None:
            continue
        name = name_match.group(1)
        filename_match = _FILENAME_RE.search(disposition)
        if filename_match is not None:
            form.files.setdefault(
                name,
                UploadedFile(
                    filename=filename_match.group(1),
                    content_type=headers.get(
                        "content-type", "application/octet-stream"
                    ),
                    data=data,
                ),
            )
        else:
            form.fields.setdefault(name, data.decode("utf-8", errors="replace"))
    return form
