"""Pydantic schemas for authentication endpoints"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    """Request schema for operator login.

    Attributes:
        username: ERP login name
        password: ERP password
        device_token: Device identifier issued at a previous login; a new
            one is generated when omitted
    """
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)
    device_token: Optional[str] = Field(default=None, alias="deviceToken")


class LoginResponse(BaseModel):
    """Response schema for successful login.

    Attributes:
        username: ERP login name
        codusu: ERP user id
        session_token: Operator token (send as Bearer)
        snkjsessionid: ERP session handle (send as Snkjsessionid header)
        device_token: Device identifier to persist on the device
    """
    model_config = ConfigDict(populate_by_name=True)

    username: str
    codusu: int
    session_token: str = Field(..., serialization_alias="sessionToken")
    snkjsessionid: str
    device_token: str = Field(..., serialization_alias="deviceToken")


class TokenPayload(BaseModel):
    """Decoded operator token."""
    username: str = ""
    codusu: int
    exp: int
    iat: int


class PermissionsResponse(BaseModel):
    """Operator permission profile, in the ERP's column names."""
    CODUSU: int
    LISTA_CODIGOS: str
    LISTA_NOMES: str
    TRANSF: bool
    BAIXA: bool
    PICK: bool
    CORRE: bool
    BXAPICK: bool
    CRIAPICK: bool


class LogoutResponse(BaseModel):
    status: str = "ok"
