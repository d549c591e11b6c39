"""
Request logging middleware.

Binds the trace id, route and caller origin into structlog's context for the
duration of the request, so every event logged while dispatching or sweeping
(notification_id, order_id, ...) can be tied back to the HTTP call that
triggered it.
"""
import time
from typing import Dict

from fastapi import Request
from opentelemetry import trace
import structlog

logger = structlog.get_logger(__name__)


def request_context(request: Request) -> Dict[str, str]:
    span = trace.get_current_span()
    trace_id = ""
    if span and span.get_span_context().is_valid:
        trace_id = format(span.get_span_context().trace_id, '032x')

    return {
        "trace_id": trace_id,
        "method": request.method,
        "path": request.url.path,
        # the dispatch endpoints build member area links from it
        "origin": request.headers.get("origin", ""),
    }


async def logging_middleware(request: Request, call_next):
    """Log each request and bind its context for everything logged meanwhile"""
    start_time = time.time()
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**request_context(request))

    try:
        logger.info(
            "Request started",
            client_ip=request.client.host if request.client else "",
            user_agent=request.headers.get("user-agent", "")
        )

        response = await call_next(request)

        latency = round(time.time() - start_time, 3)
        if response.status_code >= 500:
            logger.error("Request failed", status_code=response.status_code, latency_seconds=latency)
        else:
            logger.info("Request completed", status_code=response.status_code, latency_seconds=latency)

        return response
    finally:
        structlog.contextvars.clear_contextvars()
