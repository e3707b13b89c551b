"""
Main FastAPI application entry point.
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import TimeoutError as SQLTimeoutError

from sendix.api import api_router
from sendix.core.config import settings
from sendix.core.errors import SendixError
from sendix.core.logging import setup_logging
from sendix.middleware import RequestIdMiddleware
from sendix.services.realtime import manager

# Setup logging
setup_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Starts the Redis relay when events fan out across workers.
    """
    logger.info(
        "Starting SENDIX core API",
        version="1.0.0",
        debug=settings.api_debug,
        broadcast_backend=settings.broadcast_backend,
    )

    if settings.broadcast_backend == "redis":
        try:
            await manager.start_redis_listener()
        except Exception as exc:
            # Realtime is best-effort; REST keeps working without it
            logger.warning("Failed to start Redis relay", error=str(exc))

    yield

    logger.info("Shutting down SENDIX core API")
    await manager.close()


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="SENDIX freight brokering core - proposals, selection, commissions and chat",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestIdMiddleware)


@app.exception_handler(SendixError)
async def domain_exception_handler(request: Request, exc: SendixError):
    """Render domain errors as {detail, error}."""
    logger.info(
        "Domain error",
        path=request.url.path,
        method=request.method,
        error=exc.code,
        detail=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed requests share the validation error shape."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={
            "detail": f"{location}: {message}" if location else message,
            "error": "validation",
        },
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions."""
    error_type = type(exc).__name__
    error_str = str(exc)

    # SQLAlchemy raises TimeoutError for pool exhaustion
    is_pool_error = (
        isinstance(exc, SQLTimeoutError) or
        "QueuePool" in error_str or
        "connection timed out" in error_str.lower() or
        "pool limit" in error_str.lower()
    )

    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=error_str,
        error_type=error_type,
        is_pool_error=is_pool_error,
    )

    if is_pool_error:
        return JSONResponse(
            status_code=503,
            content={
                "detail": "Service temporarily unavailable due to high load. Please try again in a moment.",
                "error": "connection_pool_exhausted",
            },
        )

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "error": "internal"},
    )


# Include API routes with /api prefix
app.include_router(api_router, prefix="/api")


# Middleware for request logging
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests."""
    logger.debug(
        "Request",
        method=request.method,
        path=request.url.path,
    )
    response = await call_next(request)
    logger.debug(
        "Response",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sendix.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
    )
