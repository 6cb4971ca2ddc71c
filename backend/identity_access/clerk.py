"""
Identity provider (Clerk) configuration.

Why: The Access Gate and the page shell both depend on one decision: is the
identity provider configured? Keep that decision and the provider endpoints
in a framework-independent module so the web adapter only wires them.

Publishable keys look like `pk_test_<base64("<frontend-api-host>$")>`. The
frontend API host tells us where the instance publishes its JWKS and which
issuer its session tokens carry.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional
import base64
import binascii

# Small indirection to ease monkeypatching in tests
import requests as http

PLACEHOLDER_PUBLISHABLE_KEY = "pk_test_..."
_KEY_PREFIXES = ("pk_test_", "pk_live_")


def http_get(url: str, headers: Optional[Dict[str, str]] = None):
    return http.get(url, headers=headers or {}, timeout=5)


class AuthMode(str, Enum):
    """Two-variant configuration mode, resolved once at startup."""

    CLERK = "clerk"
    DISABLED = "disabled"


def is_clerk_configured(publishable_key: Optional[str]) -> bool:
    """Return True for a real-looking publishable key.

    The key must be present, carry the `pk_` prefix and differ from the
    placeholder shipped in example env files.
    """
    key = (publishable_key or "").strip()
    return key.startswith("pk_") and key != PLACEHOLDER_PUBLISHABLE_KEY


def resolve_auth_mode(publishable_key: Optional[str]) -> AuthMode:
    return AuthMode.CLERK if is_clerk_configured(publishable_key) else AuthMode.DISABLED


def frontend_api_from_key(publishable_key: str) -> Optional[str]:
    """Decode the frontend API host embedded in a publishable key.

    Returns None when the key does not carry a decodable host (e.g. a dev key
    that only passes the prefix check).
    """
    key = publishable_key.strip()
    for prefix in _KEY_PREFIXES:
        if key.startswith(prefix):
            encoded = key[len(prefix):]
            break
    else:
        return None
    padded = encoded + "=" * (-len(encoded) % 4)
    try:
        decoded = base64.b64decode(padded, validate=False).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    host = decoded.rstrip("$").strip()
    if not host or "/" in host or " " in host:
        return None
    return host


@dataclass(frozen=True)
class ClerkConfig:
    publishable_key: str
    jwks_url_override: str | None = None  # e.g., CLERK_JWKS_URL for self-hosted proxies

    @property
    def frontend_api(self) -> Optional[str]:
        return frontend_api_from_key(self.publishable_key)

    @property
    def issuer(self) -> Optional[str]:
        host = self.frontend_api
        return f"https://{host}" if host else None

    @property
    def jwks_url(self) -> Optional[str]:
        if self.jwks_url_override:
            return self.jwks_url_override
        issuer = self.issuer
        return f"{issuer}/.well-known/jwks.json" if issuer else None
