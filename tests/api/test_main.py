"""Tests for the main FastAPI application."""
import base64

import pytest
from fastapi.testclient import TestClient
from pydantic import SecretStr

from myinfo_connect.data.session_store import InMemorySessionStore
from myinfo_connect.main import app, create_app


def _basic(user: str, password: str) -> dict:
    token = base64.b64encode(f"{user}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


class TestAppSetup:
    """Tests for application setup and configuration."""

    def test_health_endpoint(self):
        client = TestClient(app)
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "myinfo-connect"}
        assert response.headers["Cache-Control"] == "public, max-age=60"
        assert "X-Request-ID" in response.headers

    def test_routes_registered(self):
        """Test the MyInfo routers are installed, not answered by the 404 fallback."""
        client = TestClient(app)

        assert client.get("/api/auth/myinfo", follow_redirects=False).status_code == 307
        assert client.get("/redirect", follow_redirects=False).status_code == 307
        assert client.get("/.well-known/jwks.json").status_code == 200

    def test_injected_session_store_used(self, settings):
        """Test an empty injected store is kept rather than replaced."""
        store = InMemorySessionStore()
        test_app = create_app(settings, store)

        assert len(store) == 0
        assert test_app.state.session_store is store

    def test_session_ttl_from_settings(self, settings):
        configured = settings.model_copy(update={"session_ttl_seconds": 42})
        test_app = create_app(configured)

        assert isinstance(test_app.state.session_store, InMemorySessionStore)
        assert test_app.state.session_store.ttl_seconds == 42

    def test_metrics_not_mounted_without_credentials(self, settings):
        client = TestClient(create_app(settings))

        assert client.get("/metrics/").status_code == 404


class TestMetricsEndpoint:
    """Tests for the basic-auth protected metrics endpoint."""

    @pytest.fixture
    def client(self, settings):
        configured = settings.model_copy(update={"metrics_user": "prom", "metrics_pass": SecretStr("scrape")})
        return TestClient(create_app(configured))

    def test_requires_credentials(self, client):
        response = client.get("/metrics/")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Basic"

    def test_wrong_credentials(self, client):
        assert client.get("/metrics/", headers=_basic("prom", "wrong")).status_code == 401

    def test_malformed_header(self, client):
        assert client.get("/metrics/", headers={"Authorization": "Basic !!!"}).status_code == 401

    def test_serves_metrics(self, client):
        client.get("/redirect", follow_redirects=False)
        response = client.get("/metrics/", headers=_basic("prom", "scrape"))

        assert response.status_code == 200
        assert "myinfo_callback_total" in response.text
