"""
Pytest configuration: make the package importable from the repo root and
give every test a fresh settings cache and user service.
"""
import sys
from pathlib import Path

import pytest

# Compute the repo root that contains the 'content_api' directory
REPO_ROOT = Path(__file__).resolve().parents[1]

# Prepend repo root to sys.path if not already present
repo_root_str = str(REPO_ROOT)
if repo_root_str not in sys.path:
    sys.path.insert(0, repo_root_str)

from content_api.core.config import reset_settings_cache  # noqa: E402
from content_api.services.user_service import reset_user_service  # noqa: E402

PASSWORD = "StrongPassw0rd!"
ADMIN_EMAIL = "admin@example.com"


@pytest.fixture(autouse=True)
def memory_provider(monkeypatch):
    """Default every test to the in-memory provider; sqlite tests override it."""
    monkeypatch.setenv("DATA_PROVIDER", "memory")
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.setenv("SUPERUSER_EMAILS", ADMIN_EMAIL)
    reset_settings_cache()
    reset_user_service()
    yield
    reset_settings_cache()
    reset_user_service()


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    from content_api.api.main import app

    app.dependency_overrides.clear()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def register_and_login(client):
    """Register a user through the API and return an Authorization header for it."""

    def _do(email: str = "user@example.com", name: str = "User One", password: str = PASSWORD) -> dict:
        r = client.post("/v1/users/register", json={"name": name, "email": email, "password": password})
        assert r.status_code == 204, r.text
        r = client.post("/v1/users/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.text
        return {"Authorization": r.json()["token"]}

    return _do
