# tests/test_health.py
from fastapi.testclient import TestClient


def test_health_check(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_root_describes_service(client: TestClient) -> None:
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["docs"] == "/docs"
    assert "name" in data and "version" in data


def test_startup_populates_app_state(client: TestClient) -> None:
    state = client.app.state
    assert state.rate_limiter is not None
    assert state.chat_sessions is not None
    assert state.chat_proxy.store is state.chat_sessions
    assert state.maintenance_worker is not None
