"""Server configuration and CLI argument parsing."""

import argparse
import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value is not None else default


MAX_BODY_BYTES = _env_int("WIKI_SERVER_MAX_BODY_BYTES", 32 * 1024 * 1024)

READ_TIMEOUT_SECONDS = 5.0
WRITE_TIMEOUT_SECONDS = 10.0
IDLE_TIMEOUT_SECONDS = 15.0
SHUTDOWN_TIMEOUT_SECONDS = 30.0

DEFAULT_LISTEN_ADDR = ":5000"
DEFAULT_DOCUMENT = "wiki.html"

HEADER_DELIMITER = b"\r\n\r\n"
REQUEST_ID_HEADER = "X-Request-Id"
LICENSE_HEADER = "X-License"
LICENSE_VALUE = "AGPLv3 http://www.gnu.org/licenses/agpl-3.0.txt"

CREDENTIALS_FIELD = "UploadPlugin"
DOCUMENT_FIELD = "userfile"
AUTH_USER_ENV = "AUTH_USER"
AUTH_PASS_ENV = "AUTH_PASS"


@dataclass(frozen=True)
class ServerConfig:
    """Connection timeouts and shutdown deadline applied by the transport."""

    read_timeout: float = READ_TIMEOUT_SECONDS
    write_timeout: float = WRITE_TIMEOUT_SECONDS
    idle_timeout: float = IDLE_TIMEOUT_SECONDS
    shutdown_timeout: float = SHUTDOWN_TIMEOUT_SECONDS
    max_body_bytes: int = MAX_BODY_BYTES


@dataclass(frozen=True)
class BuildInfo:
    """Build metadata stamped into the environment by the image build hook."""

    commit: str
    date: str


def load_build_info() -> BuildInfo:
    """Read build metadata from the environment, defaulting to 'unknown'."""
    return BuildInfo(
        commit=os.getenv("BUILD_COMMIT") or "unknown",
        date=os.getenv("BUILD_DATE") or "unknown",
    )


def parse_listen_addr(listen_addr: str) -> tuple[str, int]:
    """Split a ``host:port`` listen address; an empty host binds all interfaces."""
    host, separator, port_text = listen_addr.rpartition(":")
    if not separator:
        raise ValueError(f"Listen address {listen_addr!r} is missing a port")
    try:
        port = int(port_text)
    except ValueError as exc:
        raise ValueError(f"Invalid port in listen address {listen_addr!r}") from exc
    if not 0 <= port <= 65535:
        raise ValueError(f"Port out of range in listen address {listen_addr!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, port


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for server configuration."""
    parser = argparse.ArgumentParser(
        description="Serve a single wiki document and accept authenticated uploads"
    )
    parser.add_argument(
        "--listen-addr",
        default=DEFAULT_LISTEN_ADDR,
        help="server listen address",
    )
    parser.add_argument(
        "--document",
        default=DEFAULT_DOCUMENT,
        help="path of the served document",
    )
    default_log_level = os.getenv("WIKI_SERVER_LOG_LEVEL", "INFO").upper()
    default_destination = os.getenv("WIKI_SERVER_LOG_DESTINATION", "stdout")
    default_format = os.getenv("WIKI_SERVER_LOG_FORMAT", "json").lower()
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-destination",
        default=default_destination,
        help="stdout or a file path",
    )
    parser.add_argument(
        "--log-format",
        default=default_format,
        choices=["json", "text"],
        type=str.lower,
    )
    return parser.parse_args(argv)
