"""
Middleware for observability and request validation.
"""
import uuid
import time
from contextvars import ContextVar
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
import orjson
import structlog
from .config import get_settings

settings = get_settings()

# Context variable to store correlation ID across async context
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """Get the current correlation ID from context."""
    return correlation_id_var.get()


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add correlation IDs to all requests.

    - Extracts correlation ID from X-Correlation-ID header if present
    - Generates new UUID if not present
    - Binds correlation ID to structlog context and request state
    - Adds correlation ID to response headers
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("x-correlation-id") or str(uuid.uuid4())

        correlation_id_var.set(correlation_id)
        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            http_method=request.method,
            http_path=request.url.path,
        )

        response = await call_next(request)
        response.headers["x-correlation-id"] = correlation_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Middleware to collect HTTP metrics for Prometheus.

    - Records request count by method, path, status
    - Records request duration histogram
    - Tracks active requests
    """

    def __init__(self, app, metrics):
        super().__init__(app)
        self.metrics = metrics

    async def dispatch(self, request: Request, call_next):
        # Skip metrics endpoint to avoid recursion
        if request.url.path.startswith("/metrics"):
            return await call_next(request)

        active = self.metrics.http_requests_active.labels(service=self.metrics.service_name)
        active.inc()
        start_time = time.time()
        logger = structlog.get_logger()

        try:
            response = await call_next(request)
            duration = time.time() - start_time

            self.metrics.http_requests_total.labels(
                service=self.metrics.service_name,
                method=request.method,
                path=request.url.path,
                status=response.status_code,
            ).inc()

            self.metrics.http_request_duration.labels(
                service=self.metrics.service_name,
                method=request.method,
                path=request.url.path,
            ).observe(duration)

            logger.info(
                "http.request",
                http_status=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            return response

        except Exception as e:
            duration = time.time() - start_time
            self.metrics.http_requests_total.labels(
                service=self.metrics.service_name,
                method=request.method,
                path=request.url.path,
                status=500,
            ).inc()

            logger.error(
                "http.request_error",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round(duration * 1000, 2),
            )
            raise

        finally:
            active.dec()


def _too_large(size: int, path: str) -> JSONResponse:
    structlog.get_logger().warning(
        "payload.too_large",
        size=size,
        max_size=settings.MAX_PAYLOAD_SIZE,
        path=path,
    )
    return JSONResponse(
        status_code=413,
        content={
            "error": "PayloadTooLarge",
            "message": f"Request payload exceeds maximum size of {settings.MAX_PAYLOAD_SIZE} bytes",
            "max_size": settings.MAX_PAYLOAD_SIZE,
            "received_size": size,
        },
    )


class ValidationMiddleware(BaseHTTPMiddleware):
    """Rejects oversized bodies and malformed JSON on write requests."""

    async def dispatch(self, request: Request, call_next):
        if request.method not in ("POST", "PUT", "PATCH"):
            return await call_next(request)

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > settings.MAX_PAYLOAD_SIZE:
            return _too_large(int(content_length), request.url.path)

        if request.headers.get("content-type", "").startswith("application/json"):
            body = await request.body()
            if len(body) > settings.MAX_PAYLOAD_SIZE:
                return _too_large(len(body), request.url.path)

            if body:
                try:
                    orjson.loads(body)
                except orjson.JSONDecodeError as e:
                    structlog.get_logger().warning("invalid.json", error=str(e), path=request.url.path)
                    return JSONResponse(
                        status_code=400,
                        content={
                            "error": "InvalidJSON",
                            "message": "Request body is not valid JSON",
                            "detail": str(e),
                        },
                    )

        return await call_next(request)
