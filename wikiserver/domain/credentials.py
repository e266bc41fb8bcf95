"""Upload credential parsing and verification."""

import os

from wikiserver.bootstrap.config import AUTH_PASS_ENV, AUTH_USER_ENV


def parse_upload_plugin(value: str) -> dict[str, str]:
    """Parse a ``key=value;key=value`` string into a mapping.

    Segments without ``=`` are skipped, values may themselves contain ``=``
    and a repeated key keeps its last value.
    """
    credentials: dict[str, str] = {}
    for segment in value.split(";"):
        if "=" not in segment:
            continue
        key, item = segment.split("=", 1)
        credentials[key] = item
    return credentials


def expected_credentials() -> tuple[str, str]:
    """Return the configured user and password; unset variables are empty."""
    return os.getenv(AUTH_USER_ENV, ""), os.getenv(AUTH_PASS_ENV, "")


def credentials_match(credentials: dict[str, str]) -> bool:
    """Compare parsed credentials with the environment-provided secrets."""
    user, password = expected_credentials()
    return (
        credentials.get("user", "") == user
        and credentials.get("password", "") == password
    )
