"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 8000

Or from the project root, using HOST / PORT from settings:
    python -m backend.app.main
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# ── Core infrastructure ──
from backend.app.core.config import Settings, settings as default_settings
from backend.app.core.logging_config import setup_logging, get_logger
from backend.app.core.errors import register_error_handlers
from backend.app.core.middleware import RequestLoggingMiddleware

# ── Submission machinery ──
from backend.app.submission.service import SubmissionService

# ── API routers ──
from backend.app.api.v1.submissions import (
    local_object_router,
    router as submission_router,
)
from backend.app.api.v1.relay import router as relay_router

setup_logging()
logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[SubmissionService] = None,
) -> FastAPI:
    """
    Build the application.

    ``service`` lets tests inject a SubmissionService wired to fake
    transports; by default one is created at startup and closed at
    shutdown.
    """
    if settings is None:
        settings = default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting %s v%s [%s]",
            settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
        )
        owned = service is None
        app.state.submission_service = service if service is not None else SubmissionService(settings)
        logger.info(
            "Fallback order: %s",
            " → ".join(app.state.submission_service.registry.labels),
        )
        yield
        if owned:
            await app.state.submission_service.aclose()
        logger.info("Shutting down %s", settings.APP_NAME)

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Form + file submission gateway. Tries an ordered list of "
            "delivery channels (direct server, proxies, CORS relays, "
            "notification relay, local retention) and reports hard "
            "success, soft success or total failure with a full attempt log."
        ),
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # ── Middleware stack (last added runs outermost) ──
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
        allow_credentials=not settings.CORS_ALLOW_ALL,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Request-ID"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    register_error_handlers(app)

    app.include_router(submission_router)
    app.include_router(local_object_router)
    app.include_router(relay_router)

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "modules": ["submissions", "local-objects", "relay"],
            "docs": "/docs",
        }

    @app.get("/health/live", tags=["health"])
    async def liveness():
        """Liveness check: is the process alive?"""
        return {"status": "alive"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "backend.app.main:app",
        host=default_settings.HOST,
        port=default_settings.PORT,
        reload=default_settings.DEBUG,
    )
