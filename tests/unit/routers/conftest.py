"""Shared fixtures for HTTP endpoint tests."""

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from reelsync.config import Settings
from reelsync.main import app

ADMIN_TOKEN = "test-token"


@pytest.fixture
def client():
    """Client without lifespan: routers get their pool and catalog patched per test."""
    return TestClient(app)


@pytest.fixture
def admin_settings():
    settings = Settings(admin_token=ADMIN_TOKEN)
    with patch("reelsync.deps.security.get_settings", return_value=settings):
        yield settings


@pytest.fixture
def admin_headers(admin_settings):
    return {"X-Admin-Token": ADMIN_TOKEN}


@pytest.fixture
def user_headers():
    return {"X-User-Id": "1"}


@pytest.fixture
def mock_pool():
    return MagicMock()
