# availability_engine/core/middleware.py
"""Request middleware: correlation ids and timing logs"""
import uuid
import time
import logging
from starlette.requests import Request

from availability_engine.utils.my_logging import correlation_id_var

logger = logging.getLogger(__name__)


async def correlation_id_middleware(request: Request, call_next):
    """Tag every request, its log lines and its response with X-Correlation-ID"""
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
    request.state.correlation_id = correlation_id
    token = correlation_id_var.set(correlation_id)

    try:
        response = await call_next(request)
    finally:
        correlation_id_var.reset(token)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


async def request_logging_middleware(request: Request, call_next):
    start_time = time.perf_counter()
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    response = await call_next(request)

    duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} in {duration_ms}ms",
        extra={
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        }
    )
    return response
