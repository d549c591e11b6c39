from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog
import time
import uvicorn

from app.core.config import get_settings
from app.core.exceptions import NotificationServiceError
from app.core.logging import setup_logging
from app.database.database import init_db, close_db, check_db
from app.api.whatsapp import router as whatsapp_router
from app.api.admin import router as admin_router
from app.middleware.tracing import init_tracing
from app.middleware.metrics import MetricsMiddleware, metrics_endpoint
from app.middleware.logging import logging_middleware

setup_logging()

logger = structlog.get_logger(__name__)
settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    description="Sends WhatsApp purchase confirmations through an n8n webhook and retries them from a queue",
    version="1.0.0",
    debug=settings.debug
)

# Browser callers (storefront, admin console) hit these endpoints directly
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

if settings.tracing_enabled:
    # Must be done before startup events
    init_tracing(app)

app.add_middleware(MetricsMiddleware)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Logging middleware with trace correlation"""
    return await logging_middleware(request, call_next)


@app.exception_handler(NotificationServiceError)
async def notification_error_handler(request: Request, exc: NotificationServiceError):
    """Errors that stop a request before any record is touched"""
    logger.warning(
        "Request rejected",
        error=exc.message,
        error_type=type(exc).__name__,
        status_code=exc.http_status,
        path=request.url.path
    )
    return JSONResponse(status_code=exc.http_status, content={"error": exc.message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(
        "Unhandled exception",
        error=str(exc),
        method=request.method,
        url=str(request.url),
        exc_info=exc
    )

    return JSONResponse(
        status_code=500,
        content={"error": str(exc) or "Internal server error"}
    )


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup"""
    logger.info("Starting WhatsApp Notification Service", service_name=settings.service_name)

    try:
        await init_db()
        logger.info("Application startup completed successfully")
    except Exception as e:
        logger.error("Failed to initialize application", error=str(e))
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on application shutdown"""
    logger.info("Shutting down WhatsApp Notification Service")

    try:
        await close_db()
        logger.info("Application shutdown completed successfully")
    except Exception as e:
        logger.error("Error during application shutdown", error=str(e))


@app.get("/health")
async def health_check():
    """Service status and database reachability"""
    database_ok = await check_db()
    content = {
        "status": "healthy" if database_ok else "unhealthy",
        "service": settings.service_name,
        "database": "connected" if database_ok else "disconnected",
        "timestamp": time.time()
    }
    if not database_ok:
        return JSONResponse(status_code=503, content=content)
    return content


@app.get("/metrics")
async def metrics(request: Request):
    """Prometheus metrics endpoint"""
    return await metrics_endpoint(request)


app.include_router(whatsapp_router)
app.include_router(admin_router)


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="info" if not settings.debug else "debug"
    )
