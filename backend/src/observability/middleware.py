"""FastAPI middleware for observability.

Assigns a request ID to every HTTP request and logs its start and outcome.
Load-balancer probes and Prometheus scrapes log at DEBUG only.
"""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .request_id import REQUEST_ID_HEADER, generate_request_id, set_request_id
from .logging_config import get_logger

logger = get_logger(__name__)

QUIET_PATHS = frozenset({"/health", "/ready", "/metrics"})


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with an ID (client-supplied or generated) and time it."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        set_request_id(request_id)

        path = request.url.path
        level = logging.DEBUG if path in QUIET_PATHS else logging.INFO
        start_time = time.perf_counter()
        logger.log(
            level,
            f"{request.method} {path}",
            extra={
                "method": request.method,
                "path": path,
                "client_ip": request.client.host if request.client else None,
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {e}",
                extra={
                    "error_type": type(e).__name__,
                    "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
                },
                exc_info=True
            )
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        if response.status_code >= 500:
            level = logging.WARNING
        logger.log(
            level,
            f"{request.method} {path} -> {response.status_code} in {duration_ms}ms",
            extra={"status_code": response.status_code, "duration_ms": duration_ms},
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
