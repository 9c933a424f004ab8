"""Fixtures for API tests.

The app is exercised through TestClient without entering its lifespan, so no
system login or keep-alive thread runs; every service comes from
app.dependency_overrides.
"""

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from auth.service import OperatorAuthService
from dependencies import get_auth_service, get_erp_client, get_orchestrator, get_session_registry
from main import app


@pytest.fixture
def erp_client():
    client = Mock()
    client.credentials.has_valid_credential = True
    return client


@pytest.fixture
def client(fake_gateway, session_registry, orchestrator, erp_client):
    auth_service = OperatorAuthService(fake_gateway, session_registry, timeout_seconds=5)
    app.dependency_overrides[get_session_registry] = lambda: session_registry
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_auth_service] = lambda: auth_service
    app.dependency_overrides[get_erp_client] = lambda: erp_client

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """Log the default operator in and return (session token, ERP handle)."""
    def _login(password="secret", device_token="device-1"):
        response = client.post(
            "/apiv1/login",
            json={"username": "joao", "password": password, "deviceToken": device_token},
        )
        assert response.status_code == 200, response.text
        body = response.json()
        return body["sessionToken"], body["snkjsessionid"]
    return _login


@pytest.fixture
def auth_headers(login):
    token, _ = login()
    return {"Authorization": f"Bearer {token}"}
