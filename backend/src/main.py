"""Warehouse BFF - Main FastAPI Application

Backend-for-frontend between the warehouse handheld app and the Sankhya ERP.

This module creates and configures the main FastAPI application, including:
- API routers (operator auth, stock transactions, observability)
- Middleware (request ID correlation, CORS)
- Exception handlers mapping the ERP error hierarchy to HTTP statuses
- Startup system login and the session keep-alive loop
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Tuple, Type

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from config import get_settings
from dependencies import get_erp_client, get_keepalive_worker
from erp.errors import (
    ConflictingDestination,
    CredentialUnavailable,
    DevicePendingApproval,
    ERPError,
    ExternalHardError,
    InvalidCredentials,
    InvalidPayload,
    OrchestrationTimeout,
    OriginNotFound,
    PermissionDenied,
    SessionInstability,
    UserNotAuthorized,
    UserNotFound,
)
from sessions.errors import SessionError, SessionExpired, SessionStoreUnavailable

# Observability
from observability.logging_config import configure_logging
from observability.middleware import RequestIDMiddleware
from observability.router import router as observability_router

# Routers
from auth.router import router as auth_router
from transactions.router import router as transactions_router

settings = get_settings()

configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

logger = logging.getLogger(__name__)

API_PREFIX = "/apiv1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    - Startup: obtain the system credential (the node refuses to start
      without it) and start the keep-alive loop in thread mode
    - Shutdown: stop the keep-alive loop and close the ERP client
    """
    logger.info("Warehouse BFF starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    client = get_erp_client()
    client.authenticate()
    logger.info("System credential obtained")

    worker = None
    if settings.KEEPALIVE_MODE == "thread":
        worker = get_keepalive_worker()
        worker.start()
    else:
        logger.info(f"Keep-alive thread disabled (mode={settings.KEEPALIVE_MODE})")

    yield

    logger.info("Warehouse BFF shutting down...")
    if worker is not None:
        worker.stop()
    client.close()


app = FastAPI(
    title="Warehouse BFF",
    description="Stock transactions and operator sessions over the Sankhya ERP",
    version="0.1.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
    openapi_url="/openapi.json" if settings.ENVIRONMENT != "production" else None,
    lifespan=lifespan,
)


# =============================================================================
# MIDDLEWARE CONFIGURATION
# =============================================================================

app.add_middleware(RequestIDMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

# Most specific class wins (resolved along the exception's MRO)
ERROR_STATUS: Dict[Type[Exception], Tuple[int, str]] = {
    CredentialUnavailable: (status.HTTP_503_SERVICE_UNAVAILABLE, "credential_unavailable"),
    SessionInstability: (status.HTTP_401_UNAUTHORIZED, "session_instability"),
    PermissionDenied: (status.HTTP_403_FORBIDDEN, "permission_denied"),
    OriginNotFound: (status.HTTP_404_NOT_FOUND, "origin_not_found"),
    ConflictingDestination: (status.HTTP_409_CONFLICT, "conflicting_destination"),
    OrchestrationTimeout: (status.HTTP_504_GATEWAY_TIMEOUT, "orchestration_timeout"),
    ExternalHardError: (status.HTTP_502_BAD_GATEWAY, "erp_error"),
    InvalidPayload: (status.HTTP_400_BAD_REQUEST, "invalid_payload"),
    UserNotFound: (status.HTTP_404_NOT_FOUND, "user_not_found"),
    UserNotAuthorized: (status.HTTP_403_FORBIDDEN, "user_not_authorized"),
    DevicePendingApproval: (status.HTTP_403_FORBIDDEN, "device_pending_approval"),
    InvalidCredentials: (status.HTTP_401_UNAUTHORIZED, "invalid_credentials"),
    SessionExpired: (status.HTTP_401_UNAUTHORIZED, "session_expired"),
    SessionStoreUnavailable: (status.HTTP_503_SERVICE_UNAVAILABLE, "session_store_unavailable"),
}


def resolve_error_status(exc: Exception) -> Tuple[int, str]:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error"


def error_details(exc: Exception) -> Dict[str, Any]:
    details: Dict[str, Any] = {}
    if isinstance(exc, ERPError) and exc.external_message:
        details["externalMessage"] = exc.external_message
    if isinstance(exc, (SessionInstability, SessionExpired)):
        details["reauthRequired"] = True
    if isinstance(exc, OrchestrationTimeout) and exc.batch_id:
        details["batchId"] = exc.batch_id
    if isinstance(exc, DevicePendingApproval):
        details["deviceToken"] = exc.device_token
    if isinstance(exc, ConflictingDestination):
        details["destinationProduct"] = exc.destination_product
    return details


@app.exception_handler(ERPError)
@app.exception_handler(SessionError)
async def domain_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map ERP and session errors to structured JSON responses."""
    status_code, error = resolve_error_status(exc)
    message = exc.message if isinstance(exc, ERPError) else str(exc)
    details = error_details(exc)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        f"{error} on {request.method} {request.url.path}: {exc}",
        extra={"error_type": type(exc).__name__, "status_code": status_code},
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "details": details},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors on request bodies."""
    logger.warning(
        f"Validation error on {request.method} {request.url.path}",
        extra={"errors": exc.errors()}
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "message": "Request validation failed",
            "details": {"errors": exc.errors()},
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """Catch-all: log the failure, return a generic 500."""
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}",
        exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred. Please try again later.",
            "details": {},
        },
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(observability_router)
app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(transactions_router, prefix=API_PREFIX)


@app.get("/", include_in_schema=False)
def root() -> dict[str, Any]:
    return {
        "name": "Warehouse BFF",
        "version": "0.1.0",
        "status": "running",
    }


def create_app() -> FastAPI:
    """Return the configured application (used by tests and ASGI servers)."""
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower(),
    )
