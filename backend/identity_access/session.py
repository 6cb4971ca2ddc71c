"""
Client-local credential storage: TokenStore and SessionContext.

Why: Pages and CLI commands need the access token to talk to the backend, and
the refresh token to renew it. Both are opaque bearer strings kept in
client-local storage (never sent anywhere except as an Authorization header).

Design:
- `TokenStorage` is the local-storage abstraction. `MemoryStorage` lives for
  one process, `FileStorage` persists a small JSON document per user profile.
- `TokenStore` is the synchronous get/set/clear API on top of a storage. It
  never raises into callers: unavailable storage reads as "no token" and
  writes are dropped.
- `SessionContext` replaces ambient global state with an explicit object
  that is opened once (read persisted values) and torn down on sign-out
  (clear and notify dependents).

Security: Never log token values; warnings carry the exception class only.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol
import json
import logging
import os
import tempfile

from .domain import ACCESS_KEY, REFRESH_KEY

logger = logging.getLogger("levelup.session")


class TokenStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    def __init__(self):
        self._data: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class FileStorage:
    """JSON file backed storage (one flat object of string values).

    The parent directory is created 0700 and the file is written through a
    0600 temp file with an unpredictable name, then renamed into place. A
    missing file reads as empty; a corrupt file raises `ValueError` which `TokenStore` degrades to
    "no token".
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        if not isinstance(raw, dict):
            raise ValueError("session file must contain a JSON object")
        return {str(k): str(v) for k, v in raw.items() if isinstance(v, str)}

    def _dump(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        # mkstemp creates the file with mode 0600 regardless of umask.
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp, self.path)
        except Exception:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)

    def remove_item(self, key: str) -> None:
        data = self._load()
        if key in data:
            data.pop(key)
            self._dump(data)


def default_session_path() -> Path:
    return Path(os.getenv("LUB_SESSION_FILE", "~/.levelup/session.json")).expanduser()


class TokenStore:
    """Synchronous access/refresh token persistence.

    No expiry tracking and no validation of token contents.
    """

    def __init__(self, storage: TokenStorage | None = None):
        self.storage = storage if storage is not None else MemoryStorage()

    def _read(self, key: str) -> Optional[str]:
        try:
            return self.storage.get_item(key)
        except (OSError, ValueError) as exc:
            logger.warning("Token storage read failed: %s", exc.__class__.__name__)
            return None

    def _write(self, fn: Callable[[], None]) -> None:
        try:
            fn()
        except (OSError, ValueError) as exc:
            logger.warning("Token storage write failed: %s", exc.__class__.__name__)

    def set_tokens(self, access: str, refresh: str) -> None:
        def _set() -> None:
            self.storage.set_item(ACCESS_KEY, access)
            self.storage.set_item(REFRESH_KEY, refresh)

        self._write(_set)

    def get_access_token(self) -> Optional[str]:
        return self._read(ACCESS_KEY)

    def get_refresh_token(self) -> Optional[str]:
        return self._read(REFRESH_KEY)

    def clear_tokens(self) -> None:
        def _clear() -> None:
            self.storage.remove_item(ACCESS_KEY)
            self.storage.remove_item(REFRESH_KEY)

        self._write(_clear)


SessionListener = Callable[["SessionContext"], None]


@dataclass
class SessionContext:
    """Explicit session object handed to every page loader and command.

    Lifecycle:
    - `open()` reads the persisted tokens once (init).
    - `sign_in()` persists a fresh credential pair and notifies listeners.
    - `sign_out()` clears storage, drops the user snapshot and notifies (teardown).

    Concurrent writers (two processes on the same file) are not coordinated;
    the last write wins.
    """

    store: TokenStore
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    user: Optional[dict] = None
    _listeners: List[SessionListener] = field(default_factory=list, repr=False)

    @classmethod
    def open(cls, store: TokenStore) -> "SessionContext":
        ctx = cls(store=store)
        ctx.reload()
        return ctx

    def reload(self) -> None:
        self.access_token = self.store.get_access_token()
        self.refresh_token = self.store.get_refresh_token()

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token) and bool(self.refresh_token)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a change listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def sign_in(self, access: str, refresh: str, user: Optional[dict] = None) -> None:
        self.store.set_tokens(access, refresh)
        self.access_token = access
        self.refresh_token = refresh
        if user is not None:
            self.user = user
        self._notify()

    def sign_out(self) -> None:
        self.store.clear_tokens()
        self.access_token = None
        self.refresh_token = None
        self.user = None
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
