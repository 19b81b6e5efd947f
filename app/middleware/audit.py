from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import Request
import time
import logging

logger = logging.getLogger(__name__)

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


class AuditLogMiddleware(BaseHTTPMiddleware):
    """
    Logs every mutating API request.

    Durable audit records for lifecycle actions are written by AuditService
    once the action has committed; this middleware only leaves a request trail.
    """

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        method = request.method
        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"

        response = await call_next(request)

        if method in MUTATING_METHODS:
            duration = time.time() - start_time
            logger.info(
                f"API Request: {method} {path} - "
                f"Status: {response.status_code} - "
                f"Duration: {duration:.3f}s - "
                f"IP: {client_ip}"
            )

        return response
