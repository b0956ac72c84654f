# api/middleware.py
"""
Custom middleware for observability and request tracking.
"""
import time
import uuid
import logging
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from api.utils import hash_email_for_logging

logger = logging.getLogger("auth-sync.middleware")


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add observability features:
    - Request ID generation and tracking (honours an incoming X-Request-ID)
    - Request timing
    - Email hashing for privacy-preserving logging
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())

        email = request.query_params.get("email")
        email_hash = hash_email_for_logging(email) if email else None

        start_time = time.time()

        request.state.request_id = request_id
        request.state.email_hash = email_hash

        logger.info(
            f"Request started: request_id={request_id}, method={request.method}, "
            f"path={request.url.path}, email_hash={email_hash or 'none'}"
        )

        try:
            response = await call_next(request)

            duration_ms = (time.time() - start_time) * 1000

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

            logger.info(
                f"Request completed: request_id={request_id}, "
                f"status={response.status_code}, "
                f"duration={duration_ms:.2f}ms"
            )

            if hasattr(request.state, 'metrics'):
                logger.info(f"Request metrics: request_id={request_id}, {request.state.metrics}")

            return response

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: request_id={request_id}, "
                f"error={str(e)}, "
                f"duration={duration_ms:.2f}ms",
                exc_info=True
            )
            raise


def add_request_metrics(request: Request, **metrics):
    """
    Attach metrics to the request so the middleware logs them on completion.

    Example:
        add_request_metrics(request, processed=3, errors=1)
    """
    if not hasattr(request.state, 'metrics'):
        request.state.metrics = {}

    request.state.metrics.update(metrics)
