"""
Session token verification for the Access Gate.

Why: Keep cryptographic validation of identity-provider session tokens outside
the web adapter so we can unit test it independently and swap the cache later.

Security: Validates the session JWT signature with the instance JWKS, enforces
RS256, checks the issuer when known and respects exp/nbf/iat with a small
clock skew. Tokens are never logged.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict
import time

import requests
from jose import jwt
from jose.exceptions import JOSEError

from . import clerk
from .clerk import ClerkConfig


class SessionVerificationError(Exception):
    """Raised when the session token fails verification."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


@dataclass
class _CacheEntry:
    jwks: Dict[str, object]
    expires_at: float
    fetched_at: float


class JWKSCache:
    """Very small in-memory cache for JWKS responses."""

    def __init__(self, ttl_seconds: int = 300, min_refresh_seconds: int = 30):
        self.ttl_seconds = ttl_seconds
        # Lower bound between forced refetches so unknown kids cannot hammer the IdP.
        self.min_refresh_seconds = min_refresh_seconds
        self._entries: Dict[str, _CacheEntry] = {}

    def get(self, cfg: ClerkConfig, *, force_refresh: bool = False) -> Dict[str, object]:
        """Return the JWKS for `cfg`; `force_refresh` bypasses a fresh entry (key rotation)."""
        url = cfg.jwks_url
        if not url:
            raise SessionVerificationError("jwks_url_unknown")
        now = time.time()
        entry = self._entries.get(url)
        if entry and entry.expires_at > now and not force_refresh:
            return entry.jwks
        if entry and force_refresh and now - entry.fetched_at < self.min_refresh_seconds:
            return entry.jwks

        jwks = self._fetch(url)
        self._entries[url] = _CacheEntry(jwks=jwks, expires_at=now + self.ttl_seconds, fetched_at=now)
        return jwks

    def _fetch(self, url: str) -> Dict[str, object]:
        try:
            resp = clerk.http_get(url)
        except requests.RequestException as exc:
            raise SessionVerificationError("jwks_fetch_failed") from exc
        if resp.status_code != 200:
            raise SessionVerificationError("jwks_fetch_failed")
        try:
            jwks = resp.json()
        except ValueError as exc:
            raise SessionVerificationError("jwks_invalid") from exc
        if not isinstance(jwks, dict) or "keys" not in jwks:
            raise SessionVerificationError("jwks_invalid")
        return jwks


JWKS_CACHE = JWKSCache()

MAX_CLOCK_SKEW_SECONDS = 5  # Allow minimal skew between servers
ALLOWED_ALGORITHMS = ["RS256"]


def verify_session_token(
    *,
    token: str,
    cfg: ClerkConfig,
    cache: JWKSCache | None = None,
) -> Dict[str, object]:
    """Validate a session token using the instance JWKS and return claims.

    Parameters
    ----------
    token:
        The raw JWT from the `__session` cookie or a bearer header.
    cfg:
        Identity provider configuration (publishable key, optional JWKS URL).
    cache:
        Optional JWKS cache (defaults to module-level cache).

    Raises
    ------
    SessionVerificationError:
        When the token is invalid (format, signature, issuer, expiry, kid).
    """
    cache = cache or JWKS_CACHE
    try:
        header = jwt.get_unverified_header(token)
    except JOSEError as exc:
        raise SessionVerificationError("malformed_token") from exc
    kid = header.get("kid")
    if not kid:
        raise SessionVerificationError("missing_kid")
    key_dict = _find_key(cache.get(cfg), kid)
    if not key_dict:
        # The IdP may have rotated keys since the cached JWKS was fetched.
        key_dict = _find_key(cache.get(cfg, force_refresh=True), kid)
    if not key_dict:
        raise SessionVerificationError("unknown_kid")

    issuer = cfg.issuer
    try:
        claims = jwt.decode(
            token,
            key_dict,
            algorithms=ALLOWED_ALGORITHMS,
            issuer=issuer,
            options={
                "verify_signature": True,
                "verify_aud": False,
                "verify_iss": issuer is not None,
                "verify_exp": False,
                "verify_iat": False,
                "verify_nbf": False,
            },
        )
    except JOSEError as exc:
        raise SessionVerificationError("invalid_session_token") from exc

    _validate_temporal_claims(claims)
    if not isinstance(claims.get("sub"), str) or not claims.get("sub"):
        raise SessionVerificationError("missing_sub")

    return claims


def _find_key(jwks: Dict[str, object], kid: str) -> Dict[str, object] | None:
    keys = jwks.get("keys")
    if not isinstance(keys, list):
        return None
    for key in keys:
        if isinstance(key, dict) and key.get("kid") == kid:
            return key
    return None


def _validate_temporal_claims(claims: Dict[str, object]) -> None:
    now = time.time()
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        raise SessionVerificationError("invalid_session_token")
    if exp + MAX_CLOCK_SKEW_SECONDS < now:
        raise SessionVerificationError("session_expired")

    iat = claims.get("iat")
    if isinstance(iat, (int, float)):
        if iat - MAX_CLOCK_SKEW_SECONDS > now:
            raise SessionVerificationError("invalid_session_token")

    nbf = claims.get("nbf")
    if isinstance(nbf, (int, float)) and nbf - MAX_CLOCK_SKEW_SECONDS > now:
        raise SessionVerificationError("invalid_session_token")
