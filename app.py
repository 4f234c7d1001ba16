"""
photoledger FastAPI Application

Entry point for the usage accounting service: entitlement-gated image
transformation, per-caller usage ledger, metered billing and the simulated
checkout flow.

Example usage:
    # Start the server
    uvicorn app:app --host 0.0.0.0 --port 8000 --reload

    # Health check
    curl http://localhost:8000/health
"""

import os
from typing import Any, Dict

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from api.routes.checkout import router as checkout_router
from api.routes.process import router as process_router
from api.routes.usage import router as usage_router
from api.routes.webhooks import router as webhook_router
from auth.provider import DEFAULT_JWT_SECRET
from core import __version__
from core.db import close_db, init_db
from core.logging import RequestLoggingMiddleware, get_logger, setup_logging
from core.session_codec import DEFAULT_SESSION_KEY
from core.stripe_util import is_stripe_configured
from middleware.current_user import CurrentUserMiddleware
from middleware.rate_limit import limiter

# Setup logging
setup_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format_type=os.environ.get("LOG_FORMAT", "json")
)
logger = get_logger(__name__)

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:8000,http://127.0.0.1:8000"
CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",") if o.strip()]


def check_secrets() -> None:
    """
    Refuse to start in production with default or short secrets.

    Raises:
        RuntimeError: If ``ENVIRONMENT=production`` and a secret is insecure
    """
    if os.environ.get("ENVIRONMENT", "").lower() != "production":
        return

    jwt_secret = os.environ.get("JWT_SECRET", "")
    if len(jwt_secret) < 32 or jwt_secret == DEFAULT_JWT_SECRET:
        raise RuntimeError("Insecure JWT_SECRET; set a strong value in environment")

    session_key = os.environ.get("SESSION_ENCRYPTION_KEY", "")
    if len(session_key) < 32 or session_key == DEFAULT_SESSION_KEY:
        raise RuntimeError("Insecure SESSION_ENCRYPTION_KEY; set a strong value in environment")


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return dict details as the body so clients get ``{"error", "message"}``."""
    if isinstance(exc.detail, dict):
        content: Dict[str, Any] = exc.detail
    else:
        content = {"detail": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "INTERNAL_ERROR", "message": "Internal server error"}
    )


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Returns:
        FastAPI: Configured FastAPI application instance

    Example:
        >>> app = create_app()
        >>> # App is ready to use with uvicorn
    """
    tags_metadata = [
        {"name": "process", "description": "Entitlement-gated image transformation"},
        {"name": "usage", "description": "Trial and quota state"},
        {"name": "checkout", "description": "Simulated checkout and account creation"},
        {"name": "webhooks", "description": "Stripe subscription lifecycle"},
        {"name": "health", "description": "System health and status endpoints"},
    ]

    check_secrets()

    app = FastAPI(
        title="photoledger",
        description="Usage accounting and batch submission for image transformation",
        version=__version__,
        docs_url="/api-docs",
        redoc_url="/redoc",
        openapi_tags=tags_metadata
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=CORS_ORIGINS != ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        max_age=3600,
    )

    # Add request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    # Add caller identity middleware
    app.add_middleware(CurrentUserMiddleware)

    # Add rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Include API routers
    app.include_router(process_router)
    app.include_router(usage_router)
    app.include_router(checkout_router)
    app.include_router(webhook_router)

    @app.get("/health", tags=["health"])
    async def health_check() -> JSONResponse:
        """
        Health check endpoint for monitoring and load balancer readiness.

        Example:
            >>> # GET /health
            >>> {"status": "healthy", "service": "photoledger", "version": "0.1.0", "stripe": false}
        """
        return JSONResponse(content={
            "status": "healthy",
            "service": "photoledger",
            "version": __version__,
            "stripe": is_stripe_configured(),
        })

    @app.on_event("startup")
    async def startup_event():
        logger.info("Starting photoledger application")
        await init_db()

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down photoledger application")
        await close_db()

    return app


app = create_app()


if __name__ == "__main__":
    """
    Development server entry point.
    Run with: python app.py
    """
    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "8000")),
        reload=True,
        log_level="info"
    )
