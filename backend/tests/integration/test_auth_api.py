"""Integration tests for the operator authentication endpoints

Tests cover:
- Login response shape
- Login failures mapped to HTTP statuses
- Logout revoking the session
- Permission lookup
"""

import pytest

from auth.jwt import decode_token


pytestmark = pytest.mark.integration


class TestLoginEndpoint:
    """Test POST /apiv1/login"""

    def test_login_returns_tokens(self, client, fake_gateway):
        response = client.post(
            "/apiv1/login",
            json={"username": "joao", "password": "secret", "deviceToken": "device-1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["username"] == "joao"
        assert body["codusu"] == 42
        assert body["snkjsessionid"] == fake_gateway.login_handle
        assert body["deviceToken"] == "device-1"
        assert decode_token(body["sessionToken"])["codusu"] == 42

    def test_wrong_password_is_401(self, client):
        response = client.post(
            "/apiv1/login",
            json={"username": "joao", "password": "nope", "deviceToken": "device-1"},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_credentials"

    def test_unknown_user_is_404(self, client, fake_gateway):
        fake_gateway.user_row = None

        response = client.post("/apiv1/login", json={"username": "ghost", "password": "secret"})

        assert response.status_code == 404
        assert response.json()["error"] == "user_not_found"

    def test_pending_device_returns_device_token(self, client, fake_gateway):
        fake_gateway.device_row = None

        response = client.post(
            "/apiv1/login",
            json={"username": "joao", "password": "secret", "deviceToken": "device-new"},
        )

        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "device_pending_approval"
        assert body["details"]["deviceToken"] == "device-new"

    def test_missing_password_is_validation_error(self, client):
        response = client.post("/apiv1/login", json={"username": "joao"})

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"


class TestLogoutEndpoint:
    """Test POST /apiv1/logout"""

    def test_logout_then_token_is_rejected(self, client, auth_headers):
        response = client.post("/apiv1/logout", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

        response = client.get("/apiv1/permissions", headers=auth_headers)
        assert response.status_code == 401
        assert response.json()["details"]["reauthRequired"] is True

    def test_logout_is_idempotent(self, client, auth_headers):
        assert client.post("/apiv1/logout", headers=auth_headers).status_code == 200
        assert client.post("/apiv1/logout", headers=auth_headers).status_code == 200

    def test_logout_requires_bearer(self, client):
        assert client.post("/apiv1/logout").status_code == 401


class TestPermissionsEndpoint:
    """Test GET|POST /apiv1/permissions"""

    @pytest.mark.parametrize("method", ["get", "post"])
    def test_permissions_in_erp_column_names(self, client, auth_headers, fake_gateway, method):
        fake_gateway.set_permissions(CRIAPICK="N")

        response = getattr(client, method)("/apiv1/permissions", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["CODUSU"] == 42
        assert body["LISTA_CODIGOS"] == "1, 2"
        assert body["TRANSF"] is True
        assert body["CRIAPICK"] is False

    def test_invalid_token_is_401(self, client):
        response = client.get("/apiv1/permissions", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401

    def test_operator_without_profile_is_403(self, client, auth_headers, fake_gateway):
        fake_gateway.permissions_row = None

        response = client.get("/apiv1/permissions", headers=auth_headers)

        assert response.status_code == 403
