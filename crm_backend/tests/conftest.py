"""Pytest configuration and fixtures for crm_backend tests."""

import jwt
import pytest
from fastapi.testclient import TestClient

from crm_backend.settings import settings
from crm_backend.stores import init_stores
from crm_backend.services.attachment_storage import init_attachment_storage
from crm_backend.websocket.connection_manager import manager, ws_metrics

TEST_JWT_SECRET = "test-secret-for-crm-chat-backend-0123456789"


# ============================================================================
# Environment
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point persistence and uploads at a per-test directory."""
    monkeypatch.setattr(settings, "CHAT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setattr(settings, "UPLOADS_DIR", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setattr(settings, "WS_ALLOW_USER_ID_HANDSHAKE", True)
    return settings


@pytest.fixture(autouse=True)
def reset_realtime():
    """The connection manager is a process-wide singleton."""
    manager.reset()
    ws_metrics.reset()
    yield
    manager.reset()


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def stores(data_dir):
    """(ChannelStore, MessageStore) loaded from an empty data directory."""
    return init_stores(data_dir)


@pytest.fixture
def attachment_storage(tmp_path):
    return init_attachment_storage(tmp_path / "uploads")


# ============================================================================
# Auth
# ============================================================================


@pytest.fixture
def make_token():
    """Mint a bearer token for a user."""
    def _make(user_id: str, role: str = "user", name: str = None, **claims) -> str:
        payload = {"id": user_id, "role": role}
        if name:
            payload["name"] = name
        payload.update(claims)
        return jwt.encode(payload, TEST_JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return _make


@pytest.fixture
def auth_headers(make_token):
    def _headers(user_id: str, role: str = "user", name: str = None) -> dict:
        return {"Authorization": f"Bearer {make_token(user_id, role, name)}"}
    return _headers


@pytest.fixture
def admin_headers(auth_headers):
    return auth_headers("u1", role="admin", name="Admin One")


# ============================================================================
# Application
# ============================================================================


@pytest.fixture
def client():
    """TestClient with the lifespan running (stores loaded from tmp dirs)."""
    from crm_backend.api.chats import limiter
    from crm_backend.server import app

    limiter.reset()
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def create_channel(client, admin_headers):
    """Create a broadcast channel as admin u1 and return its record."""
    def _create(name: str = "design-team", members=("u2", "u3")) -> dict:
        response = client.post("/chats", json={"name": name, "members": list(members)}, headers=admin_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]
    return _create
