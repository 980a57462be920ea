import time
import uuid
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from donor_registry.utils.logging_config import (
    LogContext,
    get_logger,
    log_api_access,
    log_performance_metric,
)
from donor_registry.utils.security import get_client_ip

logger = get_logger(__name__)

SLOW_REQUEST_SECONDS = 1.0


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to handle request/response logging and context management
    """

    def __init__(self, app: FastAPI, log_requests: bool = True):
        super().__init__(app)
        self.log_requests = log_requests

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        client_ip = get_client_ip(request)
        path = str(request.url.path)

        with LogContext(req_id=request_id):
            start_time = time.time()

            if self.log_requests:
                logger.info(
                    f"Incoming request: {request.method} {path}",
                    extra={
                        "extra_fields": {
                            "http_method": request.method,
                            "path": path,
                            "query_params": dict(request.query_params),
                            "client_ip": client_ip,
                            "action": "request_received",
                        }
                    },
                )

            try:
                response = await call_next(request)
            except Exception as e:
                logger.error(
                    f"Request failed: {request.method} {path}",
                    extra={
                        "extra_fields": {
                            "http_method": request.method,
                            "path": path,
                            "error_type": type(e).__name__,
                            "response_time_seconds": round(time.time() - start_time, 4),
                            "client_ip": client_ip,
                            "action": "request_failed",
                        }
                    },
                    exc_info=True,
                )
                raise

            response_time = time.time() - start_time
            response.headers["X-Request-ID"] = request_id

            log_api_access(
                method=request.method,
                path=path,
                status_code=response.status_code,
                response_time=response_time,
                ip_address=client_ip,
            )

            if response_time > SLOW_REQUEST_SECONDS:
                log_performance_metric(
                    operation=f"{request.method} {path}",
                    duration_seconds=response_time,
                    additional_metrics={"status_code": response.status_code},
                )

            return response
