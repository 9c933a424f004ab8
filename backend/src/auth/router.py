"""Authentication endpoints

Operator login, logout and permission lookup.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from dependencies import get_auth_service
from .dependencies import CurrentOperator, get_bearer_token
from .schemas import LoginRequest, LoginResponse, LogoutResponse, PermissionsResponse
from .service import OperatorAuthService


router = APIRouter(tags=["Authentication"])


@router.post("/login", response_model=LoginResponse)
def login(
    credentials: LoginRequest,
    service: Annotated[OperatorAuthService, Depends(get_auth_service)],
):
    """Authenticate an operator against the ERP.

    Returns the operator token, the ERP session handle and the device token.

    Raises:
        UserNotFound (404), UserNotAuthorized (403),
        DevicePendingApproval (403, body carries deviceToken),
        InvalidCredentials (401)
    """
    result = service.login(credentials.username, credentials.password, credentials.device_token)
    return LoginResponse(
        username=result.username,
        codusu=result.operator_id,
        session_token=result.session_token,
        snkjsessionid=result.session_handle,
        device_token=result.device_token,
    )


@router.post("/logout", response_model=LogoutResponse)
def logout(
    token: Annotated[str, Depends(get_bearer_token)],
    service: Annotated[OperatorAuthService, Depends(get_auth_service)],
):
    """Revoke the operator's session. Idempotent."""
    service.logout(token)
    return LogoutResponse()


@router.api_route("/permissions", methods=["GET", "POST"], response_model=PermissionsResponse)
def get_permissions(
    operator: CurrentOperator,
    service: Annotated[OperatorAuthService, Depends(get_auth_service)],
):
    """Return the operator's current permission profile."""
    permissions = service.permissions(operator.operator_id)
    return PermissionsResponse(
        CODUSU=permissions.operator_id,
        LISTA_CODIGOS=permissions.warehouse_codes,
        LISTA_NOMES=permissions.warehouse_names,
        TRANSF=permissions.can_transfer,
        BAIXA=permissions.can_withdraw,
        PICK=permissions.can_pick,
        CORRE=permissions.can_correct,
        BXAPICK=permissions.can_withdraw_from_pick_location,
        CRIAPICK=permissions.can_create_pick_location,
    )
