# src/phone_auth/main.py
"""ASGI entry point: ``uvicorn phone_auth.main:app``."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from slowapi.middleware import SlowAPIMiddleware

from phone_auth import __version__
from phone_auth.api.errors import register_exception_handlers
from phone_auth.api.middleware import SecurityHeadersMiddleware
from phone_auth.api.rate_limit import limiter
from phone_auth.api.v1 import auth_router
from phone_auth.core.settings import Settings, settings
from phone_auth.db.session import create_tables, engine

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(level=(level or settings.log_level).upper(), format=LOG_FORMAT)


def create_app(app_settings: Settings = settings) -> FastAPI:
    """Build the service with its middleware, error envelopes and routes."""
    application = FastAPI(
        title=app_settings.app_name,
        description="Phone OTP registration with cookie-based JWT sessions",
        version=app_settings.app_version or __version__,
        debug=app_settings.debug,
    )

    application.state.limiter = limiter
    application.add_middleware(
        SecurityHeadersMiddleware,
        enable_hsts=app_settings.hsts_enabled,
        hsts_max_age=app_settings.hsts_max_age,
    )
    application.add_middleware(SlowAPIMiddleware)
    application.add_middleware(GZipMiddleware)

    # Credentials must be allowed for the session cookies to cross origins.
    application.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=app_settings.cors_allow_credentials,
        allow_methods=app_settings.cors_allow_methods,
        allow_headers=app_settings.cors_allow_headers,
    )

    register_exception_handlers(application)
    application.include_router(auth_router, prefix="/api/v1")

    @application.on_event("startup")
    async def prepare_database() -> None:
        await create_tables()
        logger.info("%s %s ready", app_settings.app_name, application.version)

    @application.on_event("shutdown")
    async def release_database() -> None:
        await engine.dispose()

    @application.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        """Liveness check."""
        return {"status": "ok"}

    return application


configure_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("phone_auth.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
