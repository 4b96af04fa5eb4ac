"""FastAPI application for the TaskMaster API."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskmaster.auth import ensure_admin
from taskmaster.config import Settings, get_settings
from taskmaster.database import Store
from taskmaster.rate_limit import FixedWindowLimiter, RateLimitMiddleware
from taskmaster.responses import register_exception_handlers
from taskmaster.routes.auth import router as auth_router
from taskmaster.routes.tasks import router as tasks_router
from taskmaster.security import SecurityHeadersMiddleware

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(settings: Optional[Settings] = None, store: Optional[Store] = None) -> FastAPI:
    """Build the application around an explicitly owned store."""
    settings = settings or get_settings()
    store = store or Store(settings.database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create tables (auto-migrating in development), seed the admin, dispose on exit."""
        store.create_all(migrate=settings.is_development())
        ensure_admin(store, settings)
        logger.info(
            "TaskMaster API started (env=%s, rate_limit=%s/%ss)",
            settings.app_env, settings.rate_limit_max, settings.rate_limit_window_seconds,
        )
        try:
            yield
        finally:
            store.dispose()
            logger.info("TaskMaster API shut down")

    app = FastAPI(
        title="TaskMaster API",
        version="1.0.0",
        description="Task management REST API with JWT authentication and role-based access control",
        lifespan=lifespan,
        docs_url="/api-docs",
    )
    app.state.settings = settings
    app.state.store = store

    limiter = None
    if settings.rate_limiting_enabled():
        limiter = FixedWindowLimiter(settings.rate_limit_max, settings.rate_limit_window_seconds)

    # Last added runs first: security headers, then CORS, then rate limit.
    app.add_middleware(RateLimitMiddleware, limiter=limiter)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_middleware(SecurityHeadersMiddleware, is_production=settings.is_production())

    register_exception_handlers(app)
    app.include_router(auth_router)
    app.include_router(tasks_router)

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
