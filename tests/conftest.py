"""Pytest fixtures for engage tests."""

import pytest

from helpers.logging import LoggerStub


@pytest.fixture
def logger() -> LoggerStub:
    """Provide a logger that discards all output."""
    return LoggerStub()
