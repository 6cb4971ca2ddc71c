"Level Up web client"
from __future__ import annotations

import logging

from fastapi import FastAPI, Request

from identity_access.clerk import AuthMode
from identity_access.tokens import JWKSCache

from .config import Settings, ensure_secure_config_on_startup, load_dotenv_if_enabled, load_settings
from .gate import AccessGate
from .routes.pages import pages_router

logger = logging.getLogger("levelup.web")


def _install_access_gate(app: FastAPI, settings: Settings, cache: JWKSCache | None) -> None:
    if settings.auth_mode is not AuthMode.CLERK or settings.clerk is None:
        logger.info("Identity provider not configured; access gate disabled")
        return
    app.middleware("http")(AccessGate(settings.clerk, cache=cache))


def create_app(settings: Settings | None = None, *, jwks_cache: JWKSCache | None = None) -> FastAPI:
    """Build the ASGI app for one immutable configuration.

    The auth mode is resolved before the app exists: in CLERK mode the Access
    Gate middleware is installed, in DISABLED mode it is not and every request
    passes through.
    """
    if settings is None:
        load_dotenv_if_enabled()
        settings = load_settings()
    ensure_secure_config_on_startup(settings)

    app = FastAPI(title="Level Up Backend", description="Learning platform web client", version="0.1.0")
    app.state.settings = settings
    app.include_router(pages_router)

    # --- Access Gate ----------------------------------------------------------------
    _install_access_gate(app, settings, jwks_cache)

    # --- Security Headers Middleware ------------------------------------------------
    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
        if settings.environment in {"prod", "production"}:
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response

    return app


app = create_app()
