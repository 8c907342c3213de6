"""Middleware for error handling, request logging and monitoring."""

import time
import uuid
from datetime import datetime
from typing import Callable
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .exceptions import (
    TrackerError,
    UnknownWorkflowSelectorError,
    InvalidOrdinalError,
    MalformedRecordError,
    RecordNotFoundError,
    RecordSourceError,
    RateLimitExceededError,
    create_error_response,
)
from .logging import get_logger, bind_request_context, reset_request_context
from .metrics import MetricsCollector


logger = get_logger(__name__)


def get_status_code_for_error(error: TrackerError) -> int:
    """Determine the HTTP status code for a tracker error."""
    if isinstance(error, (UnknownWorkflowSelectorError, InvalidOrdinalError)):
        return 400
    elif isinstance(error, RecordNotFoundError):
        return 404
    elif isinstance(error, MalformedRecordError):
        return 422
    elif isinstance(error, RateLimitExceededError):
        return 429
    elif isinstance(error, RecordSourceError):
        return 502
    else:
        return 500


def client_ip(request: Request) -> str:
    """Best-effort client address, honouring proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware assigning request IDs and converting stray errors."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request with error handling."""
        request_id = str(uuid.uuid4())
        start_time = time.time()

        context_token = bind_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_ip=client_ip(request)
        )

        try:
            logger.info(f"Request started: {request.method} {request.url.path}")

            response = await call_next(request)

            duration = time.time() - start_time
            logger.info(
                f"Request completed: {request.method} {request.url.path} - "
                f"Status: {response.status_code} - Duration: {duration:.3f}s"
            )

            response.headers["X-Request-ID"] = request_id
            return response

        except TrackerError as e:
            duration = time.time() - start_time
            logger.warning(
                f"Tracker error: {request.method} {request.url.path} - "
                f"Error: {e.error_code} - Duration: {duration:.3f}s",
                extra={"extra_fields": {"error_details": e.to_dict()}}
            )

            return JSONResponse(
                status_code=get_status_code_for_error(e),
                content={"detail": create_error_response(e)},
                headers={"X-Request-ID": request_id}
            )

        except Exception as e:
            duration = time.time() - start_time
            logger.error(
                f"Unexpected error: {request.method} {request.url.path} - "
                f"Error: {str(e)} - Duration: {duration:.3f}s",
                exc_info=True
            )

            return JSONResponse(
                status_code=500,
                content={
                    "error": "InternalServerError",
                    "message": "An unexpected error occurred",
                    "details": {
                        "error_type": type(e).__name__,
                        "timestamp": datetime.utcnow().isoformat()
                    },
                    "request_id": request_id
                },
                headers={"X-Request-ID": request_id}
            )

        finally:
            reset_request_context(context_token)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for detailed request/response logging."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Log request and response details."""
        start_time = time.time()

        logger.debug(
            f"Request details: {request.method} {request.url} - "
            f"Query params: {dict(request.query_params)}"
        )

        response = await call_next(request)

        duration = time.time() - start_time
        logger.debug(
            f"Response details: Status {response.status_code} - "
            f"Duration: {duration:.3f}s"
        )

        return response


class MonitoringMiddleware(BaseHTTPMiddleware):
    """Records API requests into the application's metrics collector."""

    def __init__(
        self,
        app,
        metrics: MetricsCollector,
        slow_request_threshold: float = 5.0,
        path_prefix: str = "/api/"
    ):
        super().__init__(app)
        self.metrics = metrics
        self.slow_request_threshold = slow_request_threshold
        self.path_prefix = path_prefix

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Time the request and store the observation."""
        start_time = time.time()

        response = await call_next(request)

        duration = time.time() - start_time

        if duration > self.slow_request_threshold:
            logger.warning(
                f"Slow request detected: {request.method} {request.url.path} - "
                f"Duration: {duration:.3f}s (threshold: {self.slow_request_threshold}s)"
            )

        if request.url.path.startswith(self.path_prefix):
            self.metrics.record_request(
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                response_time_ms=duration * 1000,
                client_ip=client_ip(request),
                order_no=getattr(request.state, "order_no", None),
                tracking_no=getattr(request.state, "tracking_no", None),
            )

        response.headers["X-Response-Time"] = f"{duration:.3f}s"

        return response
