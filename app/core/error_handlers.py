import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.exceptions import LifecycleError
from app.services.metrics_service import metrics_collector

logger = logging.getLogger(__name__)


def error_body(error_type: str, reason: str, message: str, details=None) -> dict:
    payload = {"type": error_type, "reason": reason, "message": message}
    if details:
        payload["details"] = details
    return {"error": payload}


def setup_exception_handlers(app: FastAPI):

    @app.exception_handler(LifecycleError)
    async def lifecycle_error_handler(request: Request, exc: LifecycleError):
        metrics_collector.record_error(exc.error_type, exc.reason)
        log = logger.error if exc.status_code >= 500 else logger.info
        log(f"{request.method} {request.url.path} -> {exc.status_code} {exc.error_type}/{exc.reason}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})

    # Anything unexpected becomes a generic 500; details stay in the log
    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        metrics_collector.record_error("internal_error", "unhandled")
        return JSONResponse(
            status_code=500,
            content=error_body("internal_error", "unhandled", "An unexpected error occurred"),
        )
