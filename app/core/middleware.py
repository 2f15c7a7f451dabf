"""Custom middleware for the application."""

import logging
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from app.core.metrics import RequestMetrics

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging requests and response times."""

    def __init__(
        self,
        app: ASGIApp,
        metrics: RequestMetrics,
        slow_request_threshold: int = 2000,
    ) -> None:
        """Initialize request logger.

        Args:
            app: FastAPI application
            metrics: Tracker receiving every request duration
            slow_request_threshold: Duration in ms above which a request is logged as slow
        """
        super().__init__(app)
        self.metrics = metrics
        self.slow_request_threshold = slow_request_threshold

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """Log request details and timing.

        Args:
            request: Incoming request
            call_next: Next middleware/route handler

        Returns:
            Response: Route response
        """
        start_time = time.perf_counter()

        # Add request ID
        request_id = request.headers.get("X-Request-ID") or str(time.time_ns())
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception:
            self.metrics.record((time.perf_counter() - start_time) * 1000, 500)
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        self.metrics.record(duration_ms, response.status_code)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms:.0f}ms"

        if duration_ms > self.slow_request_threshold:
            logger.warning(
                f"SLOW REQUEST: {request.method} {request.url.path} took {duration_ms:.0f}ms"
            )
        else:
            logger.debug(
                f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms:.0f}ms)"
            )

        return response
