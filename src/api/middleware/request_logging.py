"""Request timing log middleware."""

import logging
import time
from typing import Callable

from fastapi import Request, Response

from src.core.config import get_settings

logger = logging.getLogger(__name__)

# Probe endpoints are only logged when slow
QUIET_PATHS = ("/health", "/health/ready")


async def request_logging_middleware(request: Request, call_next: Callable) -> Response:
    """Log method, path, status and latency of every request.

    Requests slower than ``slow_request_ms`` and server errors are logged
    at WARNING and ERROR respectively.

    Args:
        request: The incoming request.
        call_next: The next middleware/handler in the chain.

    Returns:
        Response: The response from the handler.
    """
    start_time = time.perf_counter()
    response = None

    try:
        response = await call_next(request)
        return response
    finally:
        latency_ms = (time.perf_counter() - start_time) * 1000
        status_code = response.status_code if response else 500
        slow = latency_ms > get_settings().slow_request_ms

        args = (request.method, request.url.path, status_code, latency_ms)
        if status_code >= 500:
            logger.error("%s %s - %d - %.2fms", *args)
        elif slow:
            logger.warning("Slow request: %s %s - %d - %.2fms", *args)
        elif request.url.path not in QUIET_PATHS:
            logger.info("%s %s - %d - %.2fms", *args)
