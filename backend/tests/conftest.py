"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend, make the packages under backend/
importable, and start every test run from a clean, development-like
environment (no identity provider, local backend URL).
"""
import base64
import os
import sys
import time
from pathlib import Path

import pytest

# Scrub settings that would flip the app into another mode before `web.main`
# is imported by any test module.
for _var in ("CLERK_PUBLISHABLE_KEY", "CLERK_JWKS_URL", "LUB_ENV", "API_URL", "API_TIMEOUT_SECONDS", "LUB_SESSION_FILE"):
    os.environ.pop(_var, None)

# Ensure modules in backend/ are importable across tests
REPO_ROOT = Path(__file__).resolve().parents[2]
BACKEND_DIR = REPO_ROOT / "backend"
TESTS_DIR = BACKEND_DIR / "tests"
for p in (str(BACKEND_DIR), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)


FRONTEND_API = "clerk.levelup.test"
PUBLISHABLE_KEY = "pk_test_" + base64.b64encode(f"{FRONTEND_API}$".encode()).decode()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    for var in ("CLERK_PUBLISHABLE_KEY", "CLERK_JWKS_URL", "LUB_ENV", "API_URL", "API_TIMEOUT_SECONDS"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("LUB_SESSION_FILE", str(tmp_path / "session.json"))


@pytest.fixture(scope="session")
def rsa_keys():
    """RSA key pair plus its public JWK (kid=test-kid) for signing session tokens."""
    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric import rsa
    from jose import jwk

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    public_jwk = jwk.construct(public_pem, "RS256").to_dict()
    public_jwk["kid"] = "test-kid"
    return {"private_pem": private_pem, "jwks": {"keys": [public_jwk]}}


@pytest.fixture
def make_session_token(rsa_keys):
    """Return a factory signing Clerk-like session tokens with the test key."""
    from jose import jwt

    def _make(*, sub: str = "user_123", issuer: str | None = None, exp_delta: int = 300, kid: str = "test-kid", **extra):
        now = int(time.time())
        claims = {
            "sub": sub,
            "sid": "sess_abc",
            "iss": issuer or f"https://{FRONTEND_API}",
            "iat": now,
            "nbf": now - 1,
            "exp": now + exp_delta,
            **extra,
        }
        return jwt.encode(claims, rsa_keys["private_pem"], algorithm="RS256", headers={"kid": kid})

    return _make


class StaticJWKSCache:
    """JWKS cache stand-in that never touches the network."""

    def __init__(self, jwks):
        self.jwks = jwks
        self.calls = 0

    def get(self, cfg, *, force_refresh=False):
        self.calls += 1
        return self.jwks


@pytest.fixture
def jwks_cache(rsa_keys):
    return StaticJWKSCache(rsa_keys["jwks"])
