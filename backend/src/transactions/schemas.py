"""Pydantic schemas for transaction payloads and the execute-transaction API.

Payload field names follow the mobile app's JSON (Portuguese aliases);
attribute names are what the sagas use.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _address_to_str(value: Any) -> Any:
    # Addresses arrive as numbers or strings depending on the app screen
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class OriginPayload(BaseModel):
    """Source location of a movement."""
    model_config = ConfigDict(populate_by_name=True)

    warehouse: int = Field(..., alias="codarm")
    address: int = Field(..., alias="sequencia")


class DestinationPayload(BaseModel):
    """Target location of a transfer or picking."""
    model_config = ConfigDict(populate_by_name=True)

    warehouse: int = Field(..., alias="armazemDestino")
    address: str = Field(..., min_length=1, alias="enderecoDestino")
    quantity: float = Field(..., gt=0, alias="quantidade")
    create_pick: bool = Field(default=False, alias="criarPick")

    @field_validator("address", mode="before")
    @classmethod
    def coerce_address(cls, value: Any) -> Any:
        return _address_to_str(value)


class WithdrawalPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    origin: OriginPayload = Field(..., alias="origem")
    quantity: float = Field(..., gt=0, alias="quantidade")


class MovementPayload(BaseModel):
    """Transfer and picking payload."""
    model_config = ConfigDict(populate_by_name=True)

    origin: OriginPayload = Field(..., alias="origem")
    destination: DestinationPayload = Field(..., alias="destino")


class CorrectionPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    warehouse: int = Field(..., alias="codarm")
    address: int = Field(..., alias="sequencia")
    new_quantity: float = Field(..., ge=0, alias="newQuantity")


# API

class TransactionRequest(BaseModel):
    """Body of POST /apiv1/execute-transaction."""
    type: str = Field(..., min_length=1, description="baixa | transferencia | picking | correcao")
    payload: Dict[str, Any] = Field(default_factory=dict)


class TransactionResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    """Error body shared by every endpoint."""
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
