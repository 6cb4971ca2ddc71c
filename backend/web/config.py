"""
Configuration and startup security checks for the Level Up web client.

Why: Every process-wide setting (backend URL, identity provider mode) is read
once from the environment into an immutable `Settings` object. Nothing
re-reads the environment while requests are being served.

Permissions: The caller needs no special privileges. The functions simply read
environment variables; `ensure_secure_config_on_startup` raises `SystemExit`
on fatal misconfiguration.
"""
from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlparse
import os
import sys

from identity_access.clerk import AuthMode, ClerkConfig, resolve_auth_mode
from learning_api.client import DEFAULT_API_URL


@dataclass(frozen=True)
class Settings:
    environment: str
    api_url: str
    api_timeout_seconds: float | None
    auth_mode: AuthMode
    clerk: ClerkConfig | None

    @property
    def auth_enabled(self) -> bool:
        return self.auth_mode is AuthMode.CLERK


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def _optional_float_env(name: str) -> float | None:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got: {raw!r}")
    if value <= 0 or value > 300:
        raise ValueError(f"{name} out of range (0..300], got: {value}")
    return value


def validate_api_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("API_URL must be an absolute http:// or https:// URL")
    return url.rstrip("/")


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via LUB_ENABLE_DOTENV (default true outside pytest).
    """
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("LUB_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


def load_dotenv_if_enabled() -> None:
    if not _should_load_dotenv():
        return
    from dotenv import load_dotenv

    load_dotenv()


def load_settings() -> Settings:
    """
    Parse and validate settings from environment variables.

    Behavior:
        - `API_URL` defaults to the local backend (http://localhost:8080).
        - `API_TIMEOUT_SECONDS` is optional; unset means no client timeout.
        - `CLERK_PUBLISHABLE_KEY` decides the auth mode once; `CLERK_JWKS_URL`
          optionally overrides the JWKS endpoint derived from the key.
    """
    env = (os.getenv("LUB_ENV") or "dev").strip().lower()
    api_url = validate_api_url((os.getenv("API_URL") or DEFAULT_API_URL).strip())
    timeout = _optional_float_env("API_TIMEOUT_SECONDS")
    key = (os.getenv("CLERK_PUBLISHABLE_KEY") or "").strip()
    mode = resolve_auth_mode(key)
    clerk_cfg = None
    if mode is AuthMode.CLERK:
        jwks_override = (os.getenv("CLERK_JWKS_URL") or "").strip() or None
        clerk_cfg = ClerkConfig(publishable_key=key, jwks_url_override=jwks_override)
    return Settings(
        environment=env,
        api_url=api_url,
        api_timeout_seconds=timeout,
        auth_mode=mode,
        clerk=clerk_cfg,
    )


def ensure_secure_config_on_startup(settings: Settings) -> None:
    """Fail fast on insecure production configuration.

    Development remains permissive: without a publishable key the gate is
    disabled and every request passes through.

    Checks (prod-like environments only):
    - The identity provider must be configured (no pass-through gate).
    - API_URL must use https.
    - The session token JWKS endpoint must be resolvable.
    """
    if not _is_prod_like(settings.environment):
        return

    if settings.auth_mode is not AuthMode.CLERK:
        raise SystemExit(
            "Refusing to start: CLERK_PUBLISHABLE_KEY is unset or a placeholder in production."
        )
    if settings.api_url.lower().startswith("http://"):
        raise SystemExit("Refusing to start: API_URL must use https in production (got http).")
    if settings.clerk is None or not settings.clerk.jwks_url:
        raise SystemExit(
            "Refusing to start: cannot derive the JWKS URL from CLERK_PUBLISHABLE_KEY; set CLERK_JWKS_URL."
        )
