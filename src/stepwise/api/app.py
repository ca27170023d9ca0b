"""
FastAPI application factory.

``create_app()`` wires middleware, routers, error handlers and the install
wizard into a single ``FastAPI`` instance. It is the composition root: the
rest of the codebase never touches ``FastAPI`` directly.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stepwise import __version__
from stepwise.api.middleware.errors import stepwise_exception_handler, unhandled_exception_handler
from stepwise.api.middleware.request_id import RequestIDMiddleware
from stepwise.core.errors import StepwiseError
from stepwise.core.logging import configure_logging, get_logger
from stepwise.core.settings import StepwiseSettings, get_settings
from stepwise.install.wizard import InstallWizard


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup / shutdown hooks."""
    log = get_logger("stepwise.api")
    settings = app.state.settings
    log.info(
        "stepwise API starting",
        version=app.version,
        status_backend=settings.status_backend,
        target_version=settings.target_version,
    )
    yield
    log.info("stepwise API shutting down")


def create_app(
    *,
    settings: StepwiseSettings | None = None,
    wizard: InstallWizard | None = None,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Parameters
    ----------
    settings : StepwiseSettings | None
        Override settings (useful for testing). When ``None`` the cached
        singleton from :func:`get_settings` is used.
    wizard : InstallWizard | None
        Override the wizard (custom registry or store).
    """
    settings = settings or get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json, service="stepwise-api")

    app = FastAPI(
        title=settings.api_title,
        version=__version__,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    app.state.settings = settings
    app.state.wizard = wizard or InstallWizard(settings)

    # ── Middleware (outermost → innermost) ────────────────────────────
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(StepwiseError, stepwise_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    from stepwise.api.routers import install

    app.include_router(install.router, prefix=settings.api_prefix, tags=["install"])

    @app.get("/health", tags=["health"])
    def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "ok", "version": __version__}

    return app
