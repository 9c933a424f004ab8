"""Unit tests for SankhyaClient over httpx.MockTransport.

Tests cover:
- System calls: URL, query params, Bearer header, body envelope
- Session calls: transaction URL, JSESSIONID cookie, body envelope
- Credential reuse and renewal after a session-expired response
- Retry budget and hard-error behaviour end to end
- Keep-alive and operator login decoding
"""

import json

import httpx
import pytest

from erp.client import SankhyaClient, SankhyaConfig
from erp.deadline import Deadline
from erp.errors import (
    CredentialUnavailable,
    ExternalHardError,
    InvalidCredentials,
    SessionInstability,
)
from erp.wire import DatasetRecord


class FakeERPServer:
    """Routes MockTransport requests and records them."""

    def __init__(self):
        self.logins = 0
        self.requests = []
        # Service endpoint replies (JSON bodies or bare HTTP status codes),
        # consumed in order; the last one repeats
        self.service_responses = [{"status": "1", "responseBody": {"rows": [[1, "A"]]}}]
        self.login_status = 200
        # Per-login HTTP statuses, consumed in order; falls back to login_status
        self.login_statuses = []
        self.keepalive_response = httpx.Response(200, json={"success": True})
        self.service_error = None
        # Per-login transport failures, consumed in order; None lets that login through
        self.login_errors = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/login":
            self.logins += 1
            if self.login_errors:
                error = self.login_errors.pop(0)
                if error is not None:
                    raise error
            status = self.login_statuses.pop(0) if self.login_statuses else self.login_status
            if status != 200:
                return httpx.Response(status, json={"error": "denied"})
            return httpx.Response(200, json={"bearerToken": f"bearer-{self.logins}"})
        if path == "/mge/keepalive":
            return self.keepalive_response
        if path in ("/gateway/v1/mge/service.sbr", "/mge/service.sbr"):
            if self.service_error is not None:
                raise self.service_error
            payload = self.service_responses[0]
            if len(self.service_responses) > 1:
                self.service_responses.pop(0)
            if isinstance(payload, int):
                return httpx.Response(payload)
            return httpx.Response(200, json=payload)
        return httpx.Response(404)

    def service_requests(self):
        return [r for r in self.requests if r.url.path.endswith("service.sbr")]


@pytest.fixture
def server():
    return FakeERPServer()


def build_client(server, max_attempts=2):
    config = SankhyaConfig(
        api_url="http://erp.test",
        transaction_url="http://erp.test/mge",
        renew_url="http://erp.test/mge/keepalive",
        appkey="app-key",
        token="static-token",
        username="integration",
        password="integration-pw",
        max_attempts=max_attempts,
        backoff_seconds=0,
    )
    http_client = httpx.Client(transport=httpx.MockTransport(server))
    return SankhyaClient(config, http_client=http_client)


@pytest.fixture
def client(server):
    sankhya = build_client(server)
    yield sankhya
    sankhya.close()


class TestSystemCalls:
    """Test system-attributed service calls"""

    def test_execute_query_request_shape(self, client, server):
        rows = client.execute_query("SELECT 1 FROM DUAL", Deadline.after(5))

        assert rows == [[1, "A"]]
        login_request = server.requests[0]
        assert login_request.url.path == "/login"
        assert login_request.headers["appkey"] == "app-key"
        assert login_request.headers["token"] == "static-token"
        assert login_request.headers["username"] == "integration"

        request = server.service_requests()[0]
        assert request.url.path == "/gateway/v1/mge/service.sbr"
        assert request.url.params["serviceName"] == "DbExplorerSP.executeQuery"
        assert request.url.params["outputType"] == "json"
        assert request.headers["Authorization"] == "Bearer bearer-1"
        assert json.loads(request.content) == {
            "serviceName": "DbExplorerSP.executeQuery",
            "requestBody": {"sql": "SELECT 1 FROM DUAL", "params": {}},
        }

    def test_credential_is_reused_across_calls(self, client, server):
        client.execute_query("SELECT 1 FROM DUAL", Deadline.after(5))
        client.execute_query("SELECT 2 FROM DUAL", Deadline.after(5))

        assert server.logins == 1

    def test_session_expired_renews_system_token_and_retries(self, client, server):
        server.service_responses = [
            {"status": "3", "statusMessage": "Sessão expirada"},
            {"status": "1", "responseBody": {"rows": []}},
        ]

        assert client.execute_query("SELECT 1 FROM DUAL", Deadline.after(5)) == []

        assert server.logins == 2
        auth_headers = [r.headers["Authorization"] for r in server.service_requests()]
        assert auth_headers == ["Bearer bearer-1", "Bearer bearer-2"]

    def test_sustained_session_failure_exhausts_budget(self, client, server):
        server.service_responses = [401]

        with pytest.raises(SessionInstability):
            client.execute_query("SELECT 1 FROM DUAL", Deadline.after(5))

        assert len(server.service_requests()) == 2

    def test_transport_error_exhausts_budget(self, client, server):
        server.service_error = httpx.ConnectError("connection refused")

        with pytest.raises(SessionInstability):
            client.execute_query("SELECT 1 FROM DUAL", Deadline.after(5))

        assert len(server.service_requests()) == 2

    def test_login_blip_during_renewal_uses_remaining_attempts(self, server):
        server.service_responses = [
            {"status": "3", "statusMessage": "Sessão expirada"},
            {"status": "1", "responseBody": {"rows": [[7]]}},
        ]
        server.login_errors = [None, httpx.ConnectError("connection reset")]
        client = build_client(server, max_attempts=3)

        try:
            rows = client.execute_query("SELECT 1 FROM DUAL", Deadline.after(5))
        finally:
            client.close()

        assert rows == [[7]]
        assert server.logins == 3
        auth_headers = [r.headers["Authorization"] for r in server.service_requests()]
        assert auth_headers == ["Bearer bearer-1", "Bearer bearer-3"]

    def test_login_transport_failures_exhaust_budget(self, client, server):
        server.service_responses = [{"status": "3", "statusMessage": "Sessão expirada"}]
        server.login_errors = [None, httpx.ConnectError("connection reset")]

        with pytest.raises(CredentialUnavailable) as exc_info:
            client.execute_query("SELECT 1 FROM DUAL", Deadline.after(5))

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert len(server.service_requests()) == 1

    def test_refused_login_during_renewal_is_not_retried(self, server):
        server.service_responses = [{"status": "3", "statusMessage": "Sessão expirada"}]
        server.login_statuses = [200, 500]
        client = build_client(server, max_attempts=3)

        try:
            with pytest.raises(CredentialUnavailable):
                client.execute_query("SELECT 1 FROM DUAL", Deadline.after(5))
        finally:
            client.close()

        assert len(server.service_requests()) == 1
        assert server.logins == 2

    def test_hard_error_is_not_retried(self, client, server):
        server.service_responses = [{"status": "0", "statusMessage": "ORA-00942: table or view does not exist"}]

        with pytest.raises(ExternalHardError) as exc_info:
            client.execute_query("SELECT * FROM NOPE", Deadline.after(5))

        assert "ORA-00942" in str(exc_info.value)
        assert len(server.service_requests()) == 1

    def test_failed_system_login_is_credential_unavailable(self, client, server):
        server.login_status = 500

        with pytest.raises(CredentialUnavailable):
            client.authenticate()

        assert client.credentials.current is None


class TestSessionCalls:
    """Test operator-attributed service calls"""

    def test_save_records_as_operator(self, client, server):
        server.service_responses = [{"status": "1", "responseBody": {"result": [["5001"]]}}]

        response = client.save_records(
            "AD_BXAEND", ["SEQBAI", "DATGER", "USUGER"],
            [DatasetRecord(values={"1": "01/02/2024", "2": "42"})],
            Deadline.after(5),
            session_handle="JS-42",
        )

        assert response.result == [["5001"]]
        assert server.logins == 0
        request = server.service_requests()[0]
        assert str(request.url).startswith("http://erp.test/mge/service.sbr")
        assert request.url.params["serviceName"] == "DatasetSP.save"
        assert request.headers["Cookie"] == "JSESSIONID=JS-42"
        assert "Authorization" not in request.headers
        assert json.loads(request.content) == {
            "requestBody": {
                "entityName": "AD_BXAEND",
                "fields": ["SEQBAI", "DATGER", "USUGER"],
                "records": [{"values": {"1": "01/02/2024", "2": "42"}}],
            }
        }

    def test_execute_procedure_uses_stp_service(self, client, server):
        client.execute_procedure({"stpCall": {}}, "JS-42", Deadline.after(5))

        assert server.service_requests()[0].url.params["serviceName"] == "ActionButtonsSP.executeSTP"


class TestKeepAlive:
    """Test keep_alive never raises and reads the success flag"""

    def test_success_flag_true(self, client, server):
        assert client.keep_alive("JS-42", 1.0) is True
        request = server.requests[-1]
        assert request.headers["Cookie"] == "JSESSIONID=JS-42"

    @pytest.mark.parametrize("response", [
        httpx.Response(200, json={"success": False}),
        httpx.Response(200, json={"success": "true"}),
        httpx.Response(500),
        httpx.Response(200, text="not json"),
    ])
    def test_anything_else_is_false(self, client, server, response):
        server.keepalive_response = response
        assert client.keep_alive("JS-42", 1.0) is False

    def test_transport_error_is_false(self, server):
        def broken(request):
            raise httpx.ReadTimeout("timed out", request=request)

        config = SankhyaConfig("http://erp.test", "http://erp.test/mge", "http://erp.test/mge/keepalive")
        sankhya = SankhyaClient(config, http_client=httpx.Client(transport=httpx.MockTransport(broken)))

        assert sankhya.keep_alive("JS-42", 1.0) is False


class TestOperatorLogin:
    """Test login_user"""

    def test_returns_jsessionid(self, client, server):
        server.service_responses = [
            {"status": "1", "responseBody": {"jsessionid": {"$": "JS-NEW"}}}
        ]

        assert client.login_user("JOAO", "pw", Deadline.after(5)) == "JS-NEW"
        request = server.service_requests()[0]
        assert request.url.params["serviceName"] == "MobileLoginSP.login"
        assert json.loads(request.content)["requestBody"]["NOMUSU"] == {"$": "JOAO"}

    def test_rejected_password_is_invalid_credentials(self, client, server):
        server.service_responses = [{"status": "0", "statusMessage": "Usuário/Senha inválido"}]

        with pytest.raises(InvalidCredentials):
            client.login_user("JOAO", "wrong", Deadline.after(5))

    def test_missing_jsessionid_is_invalid_credentials(self, client, server):
        server.service_responses = [{"status": "1", "responseBody": {}}]

        with pytest.raises(InvalidCredentials):
            client.login_user("JOAO", "pw", Deadline.after(5))
