"""Shared HTTP type definitions to avoid circular imports."""

from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Callable, Iterable, Optional


@dataclass
class RequestContext:
    """Per-request metadata threaded explicitly through the middleware chain."""

    request_id: Optional[str] = None


@dataclass
class HttpRequest:
    """Represents a parsed HTTP request."""

    method: str
    path: str
    headers: dict[str, str]
    body: bytes
    remote_addr: str = ""
    version: str = "HTTP/1.1"
    context: RequestContext = field(default_factory=RequestContext)

    def header(self, name: str, default: str = "") -> str:
        """Return a header value by case-insensitive name."""
        return self.headers.get(name.lower(), default)

    @property
    def user_agent(self) -> str:
        return self.header("user-agent")


@dataclass
class HttpResponse:
    """Represents an HTTP response to be sent to a client."""

    status: HTTPStatus
    headers: dict[str, str]
    body: bytes = b""
    close_connection: bool = False
    body_iter: Optional[Iterable[bytes]] = None
    use_chunked: bool = False

    @property
    def status_line(self) -> str:
        return f"HTTP/1.1 {self.status.value} {self.status.phrase}"


Handler = Callable[[HttpRequest], HttpResponse]


def should_close(request: HttpRequest) -> bool:
    """Determine whether the client asked for the connection to be closed."""
    connection = request.header("connection").lower()
    if request.version == "HTTP/1.0":
        return connection != "keep-alive"
    return connection == "close"
