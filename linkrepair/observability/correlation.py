"""
Request Correlation.

Every operator request gets a correlation ID, taken from the caller's
``X-Correlation-ID`` / ``X-Request-ID`` header or generated. The ID is echoed
back, stamped on every log line of the request and used to count requests
per route.
"""

import uuid
from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from linkrepair.config.settings import get_settings
from linkrepair.observability.logging import correlation_id_var, get_logger
from linkrepair.observability.metrics import get_metrics_registry

logger = get_logger(__name__)

RESPONSE_HEADER = "X-Correlation-ID"
REQUEST_HEADERS = (RESPONSE_HEADER, "X-Request-ID")


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


def get_correlation_id() -> str | None:
    """Correlation ID of the request being handled, if any."""
    return correlation_id_var.get()


def extract_correlation_id(request: Request) -> str | None:
    for header in REQUEST_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return None


def _count_request(path: str, status_code: int) -> None:
    if get_settings().observability.metrics_enabled:
        get_metrics_registry().increment_counter(
            "http_requests_total", labels={"path": path, "status": str(status_code)}
        )


class CorrelationMiddleware(BaseHTTPMiddleware):
    """
    Assigns the request correlation ID and counts requests per route.

    Usage:
        app.add_middleware(CorrelationMiddleware)
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        correlation_id = extract_correlation_id(request) or generate_correlation_id()
        token = correlation_id_var.set(correlation_id)
        path = request.url.path

        try:
            response = await call_next(request)
            response.headers[RESPONSE_HEADER] = correlation_id
            _count_request(path, response.status_code)
            logger.info("Request handled", method=request.method, path=path, status_code=response.status_code)
            return response
        except Exception as e:
            logger.error("Request failed", method=request.method, path=path, error=str(e))
            _count_request(path, 500)
            raise
        finally:
            correlation_id_var.reset(token)
