"""
metaconfig - Rule-driven metadata configuration service for catalog items.

Features:
- Configuration CRUD with AND/OR rule trees, preview and bulk apply
- Item event and product webhook intake with priority resolution
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness and readiness)
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from starlette.exceptions import HTTPException as StarletteHTTPException
from .config import get_settings
from .logging import setup_logging, get_logger
from .api.router import router as events_router
from .api.configurations_router import router as configurations_router
from .api.vendors_router import router as vendors_router
from .api.stats_router import router as stats_router
from .catalog.registry import catalogs
from .configurations.persistence import configuration_store
from .errors import MetaconfigError
from .middleware import CorrelationIdMiddleware, MetricsMiddleware, ValidationMiddleware, get_correlation_id
from .metrics.prometheus import Metrics, set_metrics
from .health import HealthChecker

SERVICE_NAME = "metaconfig"
VERSION = "0.1.0"

# Initialize configuration
settings = get_settings()

# Setup logging
setup_logging(json_output=settings.LOG_JSON, service_name=SERVICE_NAME)
logger = get_logger()

# Initialize metrics
metrics = Metrics(service_name=SERVICE_NAME, version=VERSION)
set_metrics(metrics)

# Initialize health checker
health_checker = HealthChecker(configuration_store, catalogs, service_name=SERVICE_NAME, version=VERSION)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "service_starting",
        version=VERSION,
        env=settings.ENV,
        store_backend=settings.STORE_BACKEND,
        catalog_backend=settings.CATALOG_BACKEND,
    )
    metrics.app_up.labels(service=SERVICE_NAME, version=VERSION).set(1)
    yield
    logger.info("service_stopping")
    metrics.app_up.labels(service=SERVICE_NAME, version=VERSION).set(0)


# Create FastAPI app
app = FastAPI(
    title="metaconfig",
    version=VERSION,
    description="Rule-driven metadata configuration for catalog items",
    lifespan=lifespan,
)

# Add middleware (last added runs first: metrics, correlation ID, then validation)
app.add_middleware(ValidationMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(MetricsMiddleware, metrics=metrics)

# Include API routes
app.include_router(configurations_router)
app.include_router(vendors_router)
app.include_router(events_router)
app.include_router(stats_router)

# Mount Prometheus metrics endpoint
metrics_app = make_asgi_app(registry=metrics.registry)
app.mount("/metrics", metrics_app)


@app.exception_handler(MetaconfigError)
async def metaconfig_error_handler(request: Request, exc: MetaconfigError):
    correlation_id = get_correlation_id()
    log_method = logger.warning if exc.status_code < 500 else logger.error
    log_method(
        "request.failed",
        error=exc.__class__.__name__,
        message=exc.message,
        status_code=exc.status_code,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            **exc.to_dict(),
            "status_code": exc.status_code,
            "correlation_id": correlation_id,
            "path": str(request.url.path),
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    correlation_id = get_correlation_id()
    logger.warning(
        "http.exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.__class__.__name__,
            "message": exc.detail,
            "status_code": exc.status_code,
            "correlation_id": correlation_id,
            "path": str(request.url.path),
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    correlation_id = get_correlation_id()
    logger.error(
        "unhandled.exception",
        error=str(exc),
        error_type=exc.__class__.__name__,
        path=request.url.path,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "InternalServerError",
            "message": "An unexpected error occurred",
            "correlation_id": correlation_id,
            "path": str(request.url.path),
        },
    )


@app.get("/health")
async def health():
    """
    Liveness probe - basic health check.

    Returns 200 if service is running.
    """
    logger.debug("health_check_liveness")
    return health_checker.liveness()


@app.get("/health/ready")
async def health_ready():
    """
    Readiness probe - comprehensive health check.

    Returns:
        200: Service is ready to handle traffic
        503: Service is not ready
    """
    logger.debug("health_check_readiness")
    result = await health_checker.readiness()
    status_code = 200 if result["status"] == "ready" else 503
    return JSONResponse(result, status_code=status_code)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "metaconfig.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
        reload=settings.ENV == "dev",
    )
