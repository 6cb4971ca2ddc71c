"""
Access Gate: edge admission control for page navigations and API proxies.

Why:
    Protected pages must never render for a visitor without an identity
    provider session. The gate runs as middleware before any route handler.

Design:
    - The matcher decides which requests the gate sees at all: static assets
      (by extension) and the `/_next` prefix are skipped, `/api` and `/trpc`
      prefixes are always included.
    - Public routes and `/health` pass unchecked. Everything else is challenged: the
      session token is verified with the identity provider's JWKS.
    - The gate is only installed when the identity provider is configured
      (see `web.main.create_app`); otherwise requests pass through untouched.
"""
from __future__ import annotations

from typing import Callable, Optional
from urllib.parse import urlencode
import asyncio
import logging
import re

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from identity_access.clerk import ClerkConfig
from identity_access.tokens import JWKSCache, SessionVerificationError, verify_session_token

logger = logging.getLogger("levelup.gate")

SESSION_COOKIE_NAME = "__session"
SIGN_IN_PATH = "/sign-in"

PUBLIC_ROUTE_PATTERNS = (
    r"/",
    r"/sign-in(.*)",
    r"/sign-up(.*)",
    r"/pricing",
)
_PUBLIC_ROUTES = tuple(re.compile(p) for p in PUBLIC_ROUTE_PATTERNS)

_STATIC_EXTENSIONS = r"html?|css|js(?!on)|jpe?g|webp|png|gif|svg|ttf|woff2?|ico|csv|docx?|xlsx?|zip|webmanifest"
MATCHER_PATTERNS = (
    rf"/((?!_next|[^?]*\.(?:{_STATIC_EXTENSIONS})).*)",
    r"/(api|trpc)(.*)",
)
_MATCHERS = tuple(re.compile(p) for p in MATCHER_PATTERNS)

_API_PREFIXES = ("/api", "/trpc")

# Health checks stay reachable for orchestrators while the gate is active.
OPEN_PATHS = ("/health", "/favicon.ico")


def is_public_route(path: str) -> bool:
    return any(p.fullmatch(path) for p in _PUBLIC_ROUTES)


def is_gated_path(path: str) -> bool:
    """Return True when the request path falls under the gate's matcher."""
    return any(m.fullmatch(path) for m in _MATCHERS)


def _is_api_path(path: str) -> bool:
    return path.startswith(_API_PREFIXES)


def session_token_from_request(request: Request) -> Optional[str]:
    """Read the session token from the `__session` cookie or a bearer header."""
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        token = auth[7:].strip()
        if token:
            return token
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    return cookie or None


def sign_in_redirect(path: str) -> RedirectResponse:
    return RedirectResponse(url=f"{SIGN_IN_PATH}?{urlencode({'redirect_url': path})}", status_code=302)


class AccessGate:
    """Callable middleware enforcing an identity provider session.

    Usage: `app.middleware("http")(AccessGate(cfg))`.
    """

    def __init__(
        self,
        cfg: ClerkConfig,
        *,
        cache: JWKSCache | None = None,
        verify: Callable[..., dict] = verify_session_token,
    ) -> None:
        self.cfg = cfg
        self.cache = cache
        self._verify = verify

    def authenticate(self, request: Request) -> Optional[dict]:
        token = session_token_from_request(request)
        if not token:
            return None
        try:
            return self._verify(token=token, cfg=self.cfg, cache=self.cache)
        except SessionVerificationError as exc:
            logger.warning("Session verification failed: %s", exc.code)
            return None

    def challenge(self, request: Request) -> Response:
        path = request.url.path
        if _is_api_path(path):
            headers = {"Cache-Control": "private, no-store", "Vary": "Origin"}
            return JSONResponse({"error": "unauthenticated"}, status_code=401, headers=headers)
        return sign_in_redirect(path)

    async def __call__(self, request: Request, call_next):
        path = request.url.path
        if path in OPEN_PATHS or not is_gated_path(path) or is_public_route(path):
            return await call_next(request)

        # JWKS fetch on a cache miss is blocking I/O; keep it off the event loop.
        claims = await asyncio.to_thread(self.authenticate, request)
        if not claims:
            return self.challenge(request)

        # Expose minimal, read-only user context for downstream handlers.
        request.state.user = {"sub": claims.get("sub"), "sid": claims.get("sid")}
        return await call_next(request)
