"""Shared fixtures for unit tests."""

import logging

import pytest

from wikiserver.domain.request_id import clear_correlation_id


@pytest.fixture(autouse=True)
def enable_log_propagation():
    """Ensure logs propagate to root so caplog can catch them."""
    logger = logging.getLogger("wikiserver")
    old_propagate = logger.propagate
    logger.propagate = True
    yield
    logger.propagate = old_propagate


@pytest.fixture(autouse=True)
def upload_credentials(monkeypatch):
    """Configure the secrets uploads are checked against."""
    monkeypatch.setenv("AUTH_USER", "alice")
    monkeypatch.setenv("AUTH_PASS", "secret")


@pytest.fixture(autouse=True)
def reset_correlation_context():
    """Start every test without a bound request ID."""
    clear_correlation_id()
    yield
    clear_correlation_id()
