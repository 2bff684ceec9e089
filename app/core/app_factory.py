"""Application factory for the FastAPI app.

Centralizes app construction (metadata, admission context, middleware,
handlers, routers) so tests can build isolated apps with their own settings
and clock.
"""

from __future__ import annotations

import time
from typing import Callable

from fastapi import FastAPI

from app.api.routes import auth_router, health_router, tasks_router
from app.core.config import Settings, settings as default_settings
from app.core.context import build_admission_context
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware, request_logging_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import admission_middleware

DOCS_PREFIX = "/api-docs"


def create_app(
    settings: Settings | None = None,
    *,
    clock: Callable[[], float] = time.time,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        settings: Settings to use; defaults to the environment-loaded settings.
        clock: Time source for quota windows and cache freshness.
        configure_logs: Install the JSON log handler on the root logger.

    Returns:
        Configured FastAPI app.

    Raises:
        ConfigurationAppError: If the quota configuration is unusable. Startup
            must abort rather than run without limits.
    """
    cfg = settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    if configure_logs:
        configure_logging(cfg.log)

    app = FastAPI(
        title="Task Management API",
        description=(
            "Per-user task management API. Requests pass through adaptive "
            "admission control (separate quotas for anonymous callers, "
            "authentication endpoints and authenticated users) and task lists "
            "are served from a short-lived per-user response cache."
        ),
        version="1.0.0",
        docs_url=DOCS_PREFIX,
        redoc_url=None,
        openapi_url=f"{DOCS_PREFIX}/openapi.json",
        debug=cfg.app.debug,
    )

    app.state.admission = build_admission_context(cfg, clock=clock)

    # Middleware: last registered runs outermost
    app.middleware("http")(admission_middleware)
    app.middleware("http")(request_logging_middleware)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(tasks_router)

    apply_openapi_customizations(app)

    return app
