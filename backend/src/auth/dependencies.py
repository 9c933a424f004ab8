"""FastAPI dependencies for operator authentication.

This module provides dependency injection functions for:
- Extracting and validating the operator token from requests
- Sliding the operator's session and resolving its ERP session handle

Usage:
    @router.post("/execute-transaction")
    def execute(operator: CurrentOperator):
        return {"codusu": operator.operator_id}
"""

from dataclasses import dataclass
from typing import Annotated, Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from dependencies import get_session_registry
from sessions.registry import SessionRegistry

from .jwt import decode_token


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


@dataclass
class Operator:
    """Authenticated operator for the current request."""
    operator_id: int
    username: str
    session_token: str
    session_handle: str


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


def get_current_operator(
    token: str = Depends(get_bearer_token),
    registry: SessionRegistry = Depends(get_session_registry),
    snkjsessionid: Optional[str] = Header(default=None),
) -> Operator:
    """Validate the operator token and refresh its session.

    This dependency:
    1. Validates token signature and expiration
    2. Slides the session expiry and postpones its keep-alive
    3. Resolves the ERP session handle (Snkjsessionid header wins over the
       registry, as the app may hold a newer handle)

    Raises:
        HTTPException 401: If token is missing, invalid or expired
        SessionExpired: If the session was revoked or timed out
    """
    try:
        payload = decode_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )

    registered_handle = registry.validate_and_refresh(token)

    return Operator(
        operator_id=int(payload["codusu"]),
        username=payload.get("username", ""),
        session_token=token,
        session_handle=snkjsessionid or registered_handle,
    )


CurrentOperator = Annotated[Operator, Depends(get_current_operator)]
