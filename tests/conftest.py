"""Shared fixtures: a temporary database and a fake HTTP transport."""

import tempfile
from pathlib import Path

import pytest

from tubecourse.config import AppConfig
from tubecourse.errors import TransportError


class FakeClient:
    """Stands in for HttpClient. Routes by URL fragment and records every call."""

    def __init__(self, routes=None, config=None):
        self.routes = dict(routes or {})
        self.calls = []
        self.config = config or AppConfig.defaults()

    def get_text(self, url, headers=None):
        self.calls.append((url, headers))
        for fragment, response in self.routes.items():
            if fragment in url:
                if isinstance(response, Exception):
                    raise response
                return response
        raise TransportError(f"connection refused: {url}")

    def calls_to(self, fragment):
        return [url for url, _ in self.calls if fragment in url]


@pytest.fixture
def temp_db():
    """Use a temporary database for tests."""
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp) / "test.db"


@pytest.fixture
def fake_client():
    """Factory for a FakeClient with the given routes."""
    return FakeClient
