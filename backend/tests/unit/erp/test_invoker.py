"""Unit tests for the resilient ERP call loop.

Tests cover:
- Exact attempt counts for sustained transient failures and hard errors
- System token invalidation on transient failures
- Session-attributed calls never touching the system credential
- Transport errors counted as transient
- Deadline checks before each attempt
- System login transport failures between attempts spending the same budget
"""

from unittest.mock import Mock

import httpx
import pytest

from erp.credentials import CredentialCache
from erp.deadline import Deadline
from erp.errors import CredentialUnavailable, DeadlineExceeded, ExternalHardError, SessionInstability
from erp.invoker import ResilientInvoker
from erp.wire import CallOutcome, ServiceResponse


SERVICE = "DbExplorerSP.executeQuery"


def ok():
    return ServiceResponse(SERVICE, "1")


def expired():
    return ServiceResponse(SERVICE, "3", status_message="Sessão expirada")


def rejected():
    return ServiceResponse(SERVICE, "0", status_message="Produto inexistente")


@pytest.fixture
def login():
    tokens = iter(f"token-{n}" for n in range(1, 100))
    return Mock(side_effect=lambda deadline: next(tokens))


@pytest.fixture
def credentials(login, clock):
    return CredentialCache(login, clock=clock)


class TestResilientInvoker:
    """Test ResilientInvoker.invoke"""

    def test_success_on_first_attempt(self, credentials):
        call = Mock(return_value=ok())
        invoker = ResilientInvoker(credentials, max_attempts=2, backoff_seconds=0)

        response = invoker.invoke(call, Deadline.after(5), service_name=SERVICE)

        assert response.status == "1"
        call.assert_called_once_with("token-1")

    @pytest.mark.parametrize("max_attempts", [1, 2, 3])
    def test_sustained_transient_failure_makes_exactly_max_attempts(self, credentials, max_attempts):
        call = Mock(return_value=expired())
        invoker = ResilientInvoker(credentials, max_attempts=max_attempts, backoff_seconds=0)

        with pytest.raises(SessionInstability) as exc_info:
            invoker.invoke(call, Deadline.after(5), service_name=SERVICE)

        assert call.call_count == max_attempts
        assert exc_info.value.attempts == max_attempts
        assert exc_info.value.external_message == "Sessão expirada"

    def test_hard_error_makes_exactly_one_attempt(self, credentials):
        call = Mock(return_value=rejected())
        invoker = ResilientInvoker(credentials, max_attempts=3, backoff_seconds=0)

        with pytest.raises(ExternalHardError) as exc_info:
            invoker.invoke(call, Deadline.after(5), service_name=SERVICE)

        assert call.call_count == 1
        assert exc_info.value.external_message == "Produto inexistente"

    def test_transient_system_failure_refreshes_token_before_retry(self, credentials, login):
        call = Mock(side_effect=[expired(), ok()])
        invoker = ResilientInvoker(credentials, max_attempts=2, backoff_seconds=0)

        invoker.invoke(call, Deadline.after(5), service_name=SERVICE)

        assert [c.args[0] for c in call.call_args_list] == ["token-1", "token-2"]
        assert login.call_count == 2

    def test_session_attributed_call_uses_handle_and_keeps_system_token(self, credentials, login):
        call = Mock(side_effect=[expired(), ok()])
        invoker = ResilientInvoker(credentials, max_attempts=2, backoff_seconds=0)

        invoker.invoke(call, Deadline.after(5), service_name=SERVICE, session_handle="JS-1")

        assert [c.args[0] for c in call.call_args_list] == ["JS-1", "JS-1"]
        assert login.call_count == 0

    def test_transport_error_is_retried(self, credentials):
        call = Mock(side_effect=[httpx.ConnectError("connection reset"), ok()])
        invoker = ResilientInvoker(credentials, max_attempts=2, backoff_seconds=0)

        response = invoker.invoke(call, Deadline.after(5), service_name=SERVICE)

        assert response.status == "1"
        assert call.call_count == 2

    def test_per_call_budget_override(self, credentials):
        call = Mock(return_value=expired())
        invoker = ResilientInvoker(credentials, max_attempts=2, backoff_seconds=0)

        with pytest.raises(SessionInstability):
            invoker.invoke(call, Deadline.after(5), service_name=SERVICE, max_attempts=4)

        assert call.call_count == 4

    def test_expired_deadline_stops_before_calling(self, credentials):
        call = Mock(return_value=ok())
        invoker = ResilientInvoker(credentials)
        deadline = Deadline.after(5)
        deadline.cancel()

        with pytest.raises(DeadlineExceeded):
            invoker.invoke(call, deadline, service_name=SERVICE)

        call.assert_not_called()

    def test_attempt_hook_sees_every_outcome(self, credentials):
        hook = Mock()
        call = Mock(side_effect=[expired(), ok()])
        invoker = ResilientInvoker(credentials, max_attempts=2, backoff_seconds=0, on_attempt=hook)

        invoker.invoke(call, Deadline.after(5), service_name=SERVICE)

        assert [c.args for c in hook.call_args_list] == [
            (SERVICE, CallOutcome.TRANSIENT),
            (SERVICE, CallOutcome.SUCCESS),
        ]

    def test_rejects_zero_attempt_budget(self, credentials):
        with pytest.raises(ValueError):
            ResilientInvoker(credentials, max_attempts=0)

    def test_rejects_zero_attempt_override(self, credentials):
        call = Mock(return_value=ok())
        invoker = ResilientInvoker(credentials, max_attempts=2, backoff_seconds=0)

        with pytest.raises(ValueError):
            invoker.invoke(call, Deadline.after(5), service_name=SERVICE, max_attempts=0)

        call.assert_not_called()


class TestCredentialRenewalFailures:
    """Test system logins failing between attempts"""

    @staticmethod
    def flaky_login(*outcomes):
        """Login double returning tokens or raising, one outcome per call."""
        queue = list(outcomes)

        def login(deadline):
            outcome = queue.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return Mock(side_effect=login)

    def test_transport_failure_on_renewal_is_retried(self, clock):
        login = self.flaky_login("token-1", httpx.ConnectError("connection reset"), "token-3")
        invoker = ResilientInvoker(CredentialCache(login, clock=clock), max_attempts=3, backoff_seconds=0)
        call = Mock(side_effect=[expired(), ok()])

        response = invoker.invoke(call, Deadline.after(5), service_name=SERVICE)

        assert response.status == "1"
        assert [c.args for c in call.call_args_list] == [("token-1",), ("token-3",)]
        assert login.call_count == 3

    def test_budget_spent_on_renewal_raises_credential_unavailable(self, clock):
        login = self.flaky_login("token-1", httpx.ConnectError("a"), httpx.ConnectError("b"))
        invoker = ResilientInvoker(CredentialCache(login, clock=clock), max_attempts=3, backoff_seconds=0)
        call = Mock(return_value=expired())

        with pytest.raises(CredentialUnavailable) as exc_info:
            invoker.invoke(call, Deadline.after(5), service_name=SERVICE)

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert call.call_count == 1

    def test_refused_login_is_not_retried(self, clock):
        login = self.flaky_login(CredentialUnavailable("ERP login failed with HTTP 401"))
        invoker = ResilientInvoker(CredentialCache(login, clock=clock), max_attempts=3, backoff_seconds=0)
        call = Mock(return_value=ok())

        with pytest.raises(CredentialUnavailable):
            invoker.invoke(call, Deadline.after(5), service_name=SERVICE)

        assert login.call_count == 1
        call.assert_not_called()
