"""HTTP adapter for the Sankhya ERP service gateway.

SankhyaClient implements ERPGatewayPort over httpx. It owns the system
CredentialCache and routes every service call through ResilientInvoker, so
credential renewal and transient-failure retries are uniform across queries,
writes, scripts and procedures.

Two call styles exist:
- system: {api_url}/gateway/v1/mge/service.sbr with a Bearer token
- session: {transaction_url}/service.sbr with the operator's JSESSIONID cookie
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx

from .credentials import (
    CredentialCache,
    DEFAULT_CREDENTIAL_TTL_SECONDS,
    DEFAULT_SAFETY_MARGIN_SECONDS,
)
from .deadline import Deadline
from .errors import CredentialUnavailable, ExternalHardError, InvalidCredentials
from .invoker import DEFAULT_BACKOFF_SECONDS, DEFAULT_MAX_ATTEMPTS, ResilientInvoker
from .ports import ERPGatewayPort
from .wire import (
    CallOutcome,
    DatasetRecord,
    SERVICE_DATASET_SAVE,
    SERVICE_EXECUTE_QUERY,
    SERVICE_EXECUTE_SCRIPT,
    SERVICE_EXECUTE_STP,
    SERVICE_MOBILE_LOGIN,
    ServiceResponse,
    build_dataset_save_body,
    build_mobile_login_body,
    build_query_body,
)

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT_SECONDS = 10.0


@dataclass
class SankhyaConfig:
    """Endpoints, system identity and call policy for SankhyaClient."""
    api_url: str
    transaction_url: str
    renew_url: str
    appkey: str = ""
    token: str = ""
    username: str = ""
    password: str = ""
    timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    credential_ttl_seconds: float = DEFAULT_CREDENTIAL_TTL_SECONDS
    safety_margin_seconds: float = DEFAULT_SAFETY_MARGIN_SECONDS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS

    @classmethod
    def from_settings(cls, settings) -> "SankhyaConfig":
        return cls(
            api_url=settings.SANKHYA_API_URL.rstrip("/"),
            transaction_url=settings.SANKHYA_TRANSACTION_URL.rstrip("/"),
            renew_url=settings.SANKHYA_RENEW_URL,
            appkey=settings.SANKHYA_APPKEY,
            token=settings.SANKHYA_TOKEN,
            username=settings.SANKHYA_USERNAME,
            password=settings.SANKHYA_PASSWORD,
            timeout_seconds=settings.ERP_HTTP_TIMEOUT_SECONDS,
            credential_ttl_seconds=settings.SANKHYA_TOKEN_EXPIRY_SECONDS,
            safety_margin_seconds=settings.CREDENTIAL_SAFETY_MARGIN_SECONDS,
            max_attempts=settings.ERP_MAX_ATTEMPTS,
            backoff_seconds=settings.ERP_RETRY_BACKOFF_SECONDS,
        )


class SankhyaClient(ERPGatewayPort):
    """ERP gateway adapter.

    Args:
        config: Endpoints and call policy
        http_client: httpx.Client to use (tests pass one backed by
            httpx.MockTransport); a new client is created otherwise
        lock: Lock serializing system credential refreshes
        clock: Monotonic clock for credential expiry
        on_attempt: Hook called per call attempt (service name, outcome)
        on_refresh: Hook called per system login ("success" | "error")
    """

    def __init__(
        self,
        config: SankhyaConfig,
        http_client: Optional[httpx.Client] = None,
        lock: Optional[threading.Lock] = None,
        clock: Callable[[], float] = time.monotonic,
        on_attempt: Optional[Callable[[str, CallOutcome], None]] = None,
        on_refresh: Optional[Callable[[str], None]] = None,
    ):
        self.config = config
        self._http = http_client or httpx.Client(timeout=config.timeout_seconds)
        self._on_refresh = on_refresh
        self.credentials = CredentialCache(
            login=self._system_login,
            ttl_seconds=config.credential_ttl_seconds,
            safety_margin_seconds=config.safety_margin_seconds,
            lock=lock,
            clock=clock,
        )
        self.invoker = ResilientInvoker(
            self.credentials,
            max_attempts=config.max_attempts,
            backoff_seconds=config.backoff_seconds,
            on_attempt=on_attempt,
        )

    # Lifecycle

    def authenticate(self, deadline: Optional[Deadline] = None) -> None:
        """Perform the initial system login (fatal at startup if it fails)."""
        self.credentials.refresh(deadline or Deadline.after(self.config.timeout_seconds))
        logger.info("Authenticated against ERP gateway", extra={"api_url": self.config.api_url})

    def close(self) -> None:
        self._http.close()

    def _system_login(self, deadline: Deadline) -> str:
        try:
            response = self._http.post(
                f"{self.config.api_url}/login",
                headers={
                    "token": self.config.token,
                    "appkey": self.config.appkey,
                    "username": self.config.username,
                    "password": self.config.password,
                },
                timeout=deadline.timeout(self.config.timeout_seconds),
            )
            if response.status_code != 200:
                raise CredentialUnavailable(f"ERP login failed with HTTP {response.status_code}")
            try:
                bearer = response.json().get("bearerToken")
            except (ValueError, AttributeError) as e:
                raise CredentialUnavailable("ERP login returned an unreadable body") from e
            if not bearer:
                raise CredentialUnavailable("ERP login returned no bearer token")
        except Exception:
            self._notify_refresh("error")
            raise

        self._notify_refresh("success")
        return bearer

    def _notify_refresh(self, result: str) -> None:
        if self._on_refresh is not None:
            self._on_refresh(result)

    # Transport

    def _post_system(
        self,
        service_name: str,
        request_body: Dict[str, Any],
        bearer_token: str,
        deadline: Deadline,
    ) -> ServiceResponse:
        logger.debug(f"Calling ERP system service {service_name}")
        response = self._http.post(
            f"{self.config.api_url}/gateway/v1/mge/service.sbr",
            params={"serviceName": service_name, "outputType": "json"},
            json={"serviceName": service_name, "requestBody": request_body},
            headers={"Authorization": f"Bearer {bearer_token}"},
            timeout=deadline.timeout(self.config.timeout_seconds),
        )
        return ServiceResponse.from_http(service_name, response)

    def _post_session(
        self,
        service_name: str,
        request_body: Dict[str, Any],
        session_handle: str,
        deadline: Deadline,
    ) -> ServiceResponse:
        logger.debug(f"Calling ERP session service {service_name}")
        response = self._http.post(
            f"{self.config.transaction_url}/service.sbr",
            params={"serviceName": service_name, "outputType": "json"},
            json={"requestBody": request_body},
            headers={"Cookie": f"JSESSIONID={session_handle}"},
            timeout=deadline.timeout(self.config.timeout_seconds),
        )
        return ServiceResponse.from_http(service_name, response)

    def call_service(
        self,
        service_name: str,
        request_body: Dict[str, Any],
        deadline: Deadline,
        session_handle: Optional[str] = None,
        max_attempts: Optional[int] = None,
    ) -> ServiceResponse:
        """Invoke one ERP service with retries.

        Runs as the operator when `session_handle` is given, else as the system.
        """
        def call(credential: str) -> ServiceResponse:
            if session_handle is None:
                return self._post_system(service_name, request_body, credential, deadline)
            return self._post_session(service_name, request_body, credential, deadline)

        return self.invoker.invoke(
            call,
            deadline,
            service_name=service_name,
            session_handle=session_handle,
            max_attempts=max_attempts,
        )

    # ERPGatewayPort

    def execute_query(self, sql: str, deadline: Deadline) -> List[List[Any]]:
        return self.call_service(SERVICE_EXECUTE_QUERY, build_query_body(sql), deadline).rows

    def save_records(
        self,
        entity_name: str,
        fields: List[str],
        records: List[DatasetRecord],
        deadline: Deadline,
        session_handle: Optional[str] = None,
    ) -> ServiceResponse:
        body = build_dataset_save_body(entity_name, fields, records)
        return self.call_service(SERVICE_DATASET_SAVE, body, deadline, session_handle=session_handle)

    def execute_script(
        self,
        body: Dict[str, Any],
        session_handle: str,
        deadline: Deadline,
    ) -> ServiceResponse:
        return self.call_service(SERVICE_EXECUTE_SCRIPT, body, deadline, session_handle=session_handle)

    def execute_procedure(
        self,
        body: Dict[str, Any],
        session_handle: str,
        deadline: Deadline,
    ) -> ServiceResponse:
        return self.call_service(SERVICE_EXECUTE_STP, body, deadline, session_handle=session_handle)

    def keep_alive(self, session_handle: str, timeout_seconds: float) -> bool:
        try:
            response = self._http.post(
                self.config.renew_url,
                headers={"Cookie": f"JSESSIONID={session_handle}"},
                timeout=timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Keep-alive request failed: {e}")
            return False

        if response.status_code != 200:
            logger.warning(f"Keep-alive rejected with HTTP {response.status_code}")
            return False
        try:
            payload = response.json()
        except ValueError:
            logger.warning("Keep-alive returned an unreadable body")
            return False
        return isinstance(payload, dict) and payload.get("success") is True

    # Operator login

    def login_user(self, username: str, password: str, deadline: Deadline) -> str:
        """Open an ERP session for an operator.

        Returns:
            The operator's JSESSIONID

        Raises:
            InvalidCredentials: ERP refused the username/password
        """
        try:
            response = self.call_service(
                SERVICE_MOBILE_LOGIN,
                build_mobile_login_body(username, password),
                deadline,
            )
        except ExternalHardError as e:
            raise InvalidCredentials("Invalid ERP credentials", external_message=e.external_message) from e

        jsessionid = response.response_body.get("jsessionid")
        handle = jsessionid.get("$") if isinstance(jsessionid, dict) else None
        if not handle:
            raise InvalidCredentials("ERP login returned no session")
        return handle
