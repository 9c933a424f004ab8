"""
ERP module - integration with the Sankhya service gateway

This module owns everything that talks to the ERP:
- System credential cache with expiry-driven renewal
- Resilient call execution (classification + bounded retry)
- Visibility polling for asynchronously processed writes
- Typed decoding of query rows
- ERPGatewayPort and its httpx adapter (SankhyaClient)
"""

from .errors import (
    ERPError,
    CredentialUnavailable,
    SessionInstability,
    ExternalHardError,
    PermissionDenied,
    OriginNotFound,
    ConflictingDestination,
    OrchestrationTimeout,
    DeadlineExceeded,
    InvalidPayload,
    UserNotFound,
    UserNotAuthorized,
    DevicePendingApproval,
    InvalidCredentials,
)
from .deadline import Deadline
from .credentials import Credential, CredentialCache
from .invoker import ResilientInvoker
from .consistency import ConsistencyWaiter
from .ports import ERPGatewayPort
from .client import SankhyaClient, SankhyaConfig

__all__ = [
    "ERPError",
    "CredentialUnavailable",
    "SessionInstability",
    "ExternalHardError",
    "PermissionDenied",
    "OriginNotFound",
    "ConflictingDestination",
    "OrchestrationTimeout",
    "DeadlineExceeded",
    "InvalidPayload",
    "UserNotFound",
    "UserNotAuthorized",
    "DevicePendingApproval",
    "InvalidCredentials",
    "Deadline",
    "Credential",
    "CredentialCache",
    "ResilientInvoker",
    "ConsistencyWaiter",
    "ERPGatewayPort",
    "SankhyaClient",
    "SankhyaConfig",
]
