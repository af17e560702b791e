"""
Module: main.py
Description: FastAPI application entry point for the webhook engine.

Initializes the FastAPI application with all routes, middleware,
and error handlers, and exposes it to Lambda through Mangum.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mangum import Mangum

from webhook_engine.config.settings import settings
from webhook_engine.handlers.events import router as events_router
from webhook_engine.handlers.webhooks import router as webhooks_router
from webhook_engine.utils.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown logging."""
    logger.info(
        "Starting webhook engine",
        version=settings.app_version,
        stage=settings.stage,
        region=settings.aws_region
    )
    yield
    logger.info("Shutting down webhook engine")


# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Outbound webhook delivery for agent lifecycle events",
    version=settings.app_version,
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(events_router)
app.include_router(webhooks_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns basic application health information.
    """
    logger.info("Health check requested")

    return {
        "status": "ok",
        "message": "Webhook engine is healthy",
        "version": settings.app_version,
        "environment": settings.stage,
        "retry_mode": "scheduled" if settings.retry_queue_url else "in_process"
    }


# Global exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Global HTTP exception handler.

    Logs HTTP exceptions and returns structured error responses.
    """
    logger.warning(
        "HTTP exception occurred",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.status_code,
                "message": exc.detail,
                "type": "http_exception"
            }
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors.

    Logs unexpected exceptions and returns generic error responses.
    """
    logger.error(
        "Unhandled exception occurred",
        error=str(exc),
        error_class=type(exc).__name__,
        path=request.url.path,
        method=request.method
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": 500,
                "message": "Internal server error",
                "type": "internal_error"
            }
        }
    )


# Lambda handler
handler = Mangum(app, lifespan="off")
