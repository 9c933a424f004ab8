"""Operator login, logout and permission lookup.

Login sequence:
1. Resolve the username to its ERP user id and require an app permission profile
2. Require an approved device (unknown devices are registered inactive)
3. Open the operator's ERP session (JSESSIONID)
4. Issue the operator token and register the session for keep-alive
"""

import logging
from dataclasses import dataclass
from typing import Optional

from erp.deadline import Deadline
from erp.errors import DevicePendingApproval, ERPError, UserNotAuthorized
from erp.ports import ERPGatewayPort
from erp.queries import (
    UserPermissions,
    fetch_device,
    fetch_user_permissions,
    register_device,
    verify_user_access,
)
from observability.metrics import operator_logins_total
from sessions.registry import SessionRegistry, mask_token

from .device import new_device_token
from .jwt import create_access_token

logger = logging.getLogger(__name__)

DEFAULT_LOGIN_TIMEOUT_SECONDS = 30.0

_LOGIN_FAILURE_LABELS = {
    "UserNotFound": "user_not_found",
    "UserNotAuthorized": "not_authorized",
    "DevicePendingApproval": "device_pending",
    "InvalidCredentials": "invalid_credentials",
}


@dataclass
class LoginResult:
    username: str
    operator_id: int
    session_token: str
    session_handle: str
    device_token: str


class OperatorAuthService:
    """Authenticates operators against the ERP and manages their sessions.

    Args:
        gateway: ERP gateway
        registry: Session registry
        timeout_seconds: Deadline for one login or permission lookup
    """

    def __init__(
        self,
        gateway: ERPGatewayPort,
        registry: SessionRegistry,
        timeout_seconds: float = DEFAULT_LOGIN_TIMEOUT_SECONDS,
    ):
        self.gateway = gateway
        self.registry = registry
        self.timeout_seconds = timeout_seconds

    def login(self, username: str, password: str, device_token: Optional[str] = None) -> LoginResult:
        """Authenticate an operator.

        Raises:
            UserNotFound, UserNotAuthorized: Username checks failed
            DevicePendingApproval: Device unknown (now registered) or inactive
            InvalidCredentials: ERP refused the password
        """
        deadline = Deadline.after(self.timeout_seconds)
        device_token = device_token or new_device_token()
        logger.info("Login attempt", extra={"username": username})

        try:
            operator_id = verify_user_access(self.gateway, username, deadline)
            self._verify_device(operator_id, device_token, deadline)
            session_handle = self.gateway.login_user(username, password, deadline)
        except ERPError as e:
            operator_logins_total.labels(
                result=_LOGIN_FAILURE_LABELS.get(type(e).__name__, "error")
            ).inc()
            raise

        session_token = create_access_token(username, operator_id)
        self.registry.register(session_token, session_handle)
        operator_logins_total.labels(result="success").inc()

        logger.info(
            "Login succeeded",
            extra={"username": username, "operator_id": operator_id, "session": mask_token(session_token)},
        )
        return LoginResult(
            username=username,
            operator_id=operator_id,
            session_token=session_token,
            session_handle=session_handle,
            device_token=device_token,
        )

    def _verify_device(self, operator_id: int, device_token: str, deadline: Deadline) -> None:
        device = fetch_device(self.gateway, operator_id, device_token, deadline)
        if device is None:
            register_device(self.gateway, operator_id, device_token, deadline)
            raise DevicePendingApproval(device_token)
        if not device.active:
            raise DevicePendingApproval(device_token)

    def logout(self, session_token: str) -> None:
        self.registry.revoke(session_token)

    def permissions(self, operator_id: int) -> UserPermissions:
        permissions = fetch_user_permissions(
            self.gateway, operator_id, Deadline.after(self.timeout_seconds)
        )
        if permissions is None:
            raise UserNotAuthorized("Operator has no permission profile")
        return permissions
