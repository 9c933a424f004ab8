"""Error taxonomy for the ERP integration and transaction engine.

Every failure raised by the core is an ERPError subclass carrying a
human-readable message plus, where available, the raw message returned by
the ERP for diagnostics. The HTTP layer maps each class to a status code
(see main.py).
"""

from typing import Optional


class ERPError(Exception):
    """Base exception for ERP integration failures.

    Attributes:
        message: Human-readable description
        external_message: Raw message reported by the ERP, if any
    """

    def __init__(self, message: str, external_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.external_message = external_message

    def __str__(self) -> str:
        if self.external_message and self.external_message not in self.message:
            return f"{self.message}: {self.external_message}"
        return self.message


class CredentialUnavailable(ERPError):
    """System login/refresh against the ERP failed."""
    pass


class SessionInstability(ERPError):
    """ERP kept reporting the session as invalid after the full retry budget.

    Surfaced to the operator as "reauthenticate".
    """

    def __init__(
        self,
        service_name: str,
        external_message: Optional[str] = None,
        attempts: int = 0
    ):
        super().__init__(
            f"ERP session unstable for {service_name} after {attempts} attempt(s)",
            external_message=external_message,
        )
        self.service_name = service_name
        self.attempts = attempts


class ExternalHardError(ERPError):
    """ERP rejected the call for a non-transient reason."""

    def __init__(self, service_name: str, external_message: Optional[str] = None):
        super().__init__(
            f"ERP rejected {service_name}",
            external_message=external_message or "unknown ERP error",
        )
        self.service_name = service_name


class PermissionDenied(ERPError):
    """Operator lacks the capability flag required for the operation."""
    pass


class OriginNotFound(ERPError):
    """Origin location does not exist or holds no stock."""
    pass


class ConflictingDestination(ERPError):
    """Destination already holds a different product than the origin."""

    def __init__(self, destination_product: str):
        super().__init__(
            f"Destination holds a different product ({destination_product})"
        )
        self.destination_product = destination_product


class OrchestrationTimeout(ERPError):
    """The ERP did not make a submitted batch visible in time.

    batch_id is set when lines were already submitted, so the client can
    re-query state before retrying.
    """

    def __init__(self, message: str, batch_id: Optional[str] = None):
        super().__init__(message)
        self.batch_id = batch_id


class DeadlineExceeded(OrchestrationTimeout):
    """The caller's deadline elapsed (or was cancelled) mid-operation."""
    pass


class InvalidPayload(ERPError):
    """Transaction kind or payload could not be parsed."""
    pass


# Operator login failures

class UserNotFound(ERPError):
    """Username does not exist in the ERP."""
    pass


class UserNotAuthorized(ERPError):
    """User exists but has no app permission profile."""
    pass


class DevicePendingApproval(ERPError):
    """Device is unknown or not yet activated by an administrator."""

    def __init__(self, device_token: str):
        super().__init__(
            "Device not authorized. Ask an administrator to approve it"
        )
        self.device_token = device_token


class InvalidCredentials(ERPError):
    """ERP refused the operator's username/password."""
    pass
