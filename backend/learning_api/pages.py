"""
Page loaders: the data-fetching contract behind the dashboard pages.

Intent:
    Each loader reads the access token from the session, calls one or more
    API operations and returns a `PageResult` the caller renders. Loaders never
    raise for expected failures; they turn them into a short error text.

Behavior:
    - No access token → "Not authenticated", without a network call.
    - `ApiError` → its message (the backend's `error` field or the fallback).
    - Transport failure → generic "Network error" (logged with class name);
      a non-JSON body or a missing required field → "Unexpected response
      from server"; nothing is stored from such a response.
    - No automatic refresh on 401; callers invoke `refresh_session` explicitly.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar
import logging

import httpx

from identity_access.session import SessionContext

from .client import ApiClient, ApiError
from .models import completion_percent

logger = logging.getLogger("levelup.pages")

T = TypeVar("T")

NOT_AUTHENTICATED = "Not authenticated"
NETWORK_ERROR = "Network error"
UNEXPECTED_RESPONSE = "Unexpected response from server"


@dataclass(frozen=True)
class PageResult(Generic[T]):
    data: Optional[T] = None
    error: Optional[str] = None
    status: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def _guard(fn: Callable[[], Awaitable[T]]) -> PageResult[T]:
    try:
        return PageResult(data=await fn())
    except ApiError as exc:
        return PageResult(error=exc.message, status=exc.status)
    except httpx.TransportError as exc:
        logger.warning("Backend unreachable: %s", exc.__class__.__name__)
        return PageResult(error=NETWORK_ERROR)
    except (ValueError, KeyError) as exc:
        # Body was not JSON or lacked a required field.
        logger.warning("Backend sent an unreadable response: %s", exc.__class__.__name__)
        return PageResult(error=UNEXPECTED_RESPONSE)


async def _authed(session: SessionContext, fn: Callable[[str], Awaitable[T]]) -> PageResult[T]:
    token = session.access_token
    if not token:
        return PageResult(error=NOT_AUTHENTICATED)
    return await _guard(lambda: fn(token))


# --- Auth pages -----------------------------------------------------------------


async def sign_in(api: ApiClient, session: SessionContext, *, email: str, password: str) -> PageResult[Dict[str, Any]]:
    """Log in and store both tokens verbatim in the session."""

    async def _run():
        resp = await api.auth.login(email, password)
        access, refresh, user = resp["access_token"], resp["refresh_token"], resp["user"]
        session.sign_in(access, refresh, user=user)
        return user

    return await _guard(_run)


async def sign_up(api: ApiClient, session: SessionContext, *, email: str, password: str, name: str) -> PageResult[Dict[str, Any]]:
    async def _run():
        resp = await api.auth.register(email, password, name)
        access, refresh, user = resp["access_token"], resp["refresh_token"], resp["user"]
        session.sign_in(access, refresh, user=user)
        return user

    return await _guard(_run)


async def refresh_session(api: ApiClient, session: SessionContext) -> PageResult[bool]:
    """Exchange the stored refresh token for a new pair (explicit, never automatic)."""
    refresh = session.refresh_token
    if not refresh:
        return PageResult(error=NOT_AUTHENTICATED)

    async def _run():
        pair = await api.auth.refresh(refresh)
        session.sign_in(pair["access_token"], pair["refresh_token"])
        return True

    return await _guard(_run)


def sign_out(session: SessionContext) -> None:
    session.sign_out()


# --- Dashboard pages ------------------------------------------------------------


async def load_dashboard(api: ApiClient, session: SessionContext) -> PageResult[Dict[str, Any]]:
    """Modules plus progress counters for the dashboard landing page."""

    async def _run(token: str):
        modules = await api.modules.list(token)
        progress = await api.progress.get(token)
        ordered = sorted(modules.get("modules") or [], key=lambda m: m.get("order_index", 0))
        return {
            "modules": ordered,
            "completed_lessons": len(progress.get("completed_lesson_ids") or []),
            "completed_skills": len(progress.get("completed_skill_ids") or []),
        }

    return await _authed(session, _run)


async def load_module(api: ApiClient, session: SessionContext, slug: str) -> PageResult[Dict[str, Any]]:
    async def _run(token: str):
        detail = await api.modules.get(slug, token)
        return {"module": detail, "percent": completion_percent(detail)}

    return await _authed(session, _run)


async def load_lesson(api: ApiClient, session: SessionContext, module_slug: str, lesson_slug: str) -> PageResult[Dict[str, Any]]:
    async def _run(token: str):
        lesson = await api.lessons.get(module_slug, lesson_slug, token)
        progress = await api.progress.get(token)
        done = lesson["id"] in set(progress.get("completed_lesson_ids") or [])
        return {"lesson": lesson, "completed": done}

    return await _authed(session, _run)


async def complete_lesson(api: ApiClient, session: SessionContext, lesson_id: str) -> PageResult[Dict[str, Any]]:
    """Mark a lesson complete, then re-fetch progress (snapshots are immutable)."""

    async def _run(token: str):
        await api.lessons.complete(lesson_id, token)
        return await api.progress.get(token)

    return await _authed(session, _run)


async def load_skills(api: ApiClient, session: SessionContext, module_slug: str) -> PageResult[Dict[str, Any]]:
    async def _run(token: str):
        skills = await api.skills.list(module_slug, token)
        progress = await api.progress.get(token)
        done = set(progress.get("completed_skill_ids") or [])
        items = sorted(skills.get("skills") or [], key=lambda s: s.get("order_index", 0))
        return {"skills": [{**s, "completed": s["id"] in done} for s in items]}

    return await _authed(session, _run)


async def complete_skill(api: ApiClient, session: SessionContext, skill_id: str) -> PageResult[Dict[str, Any]]:
    async def _run(token: str):
        await api.skills.complete(skill_id, token)
        return await api.progress.get(token)

    return await _authed(session, _run)


async def load_progress(api: ApiClient, session: SessionContext) -> PageResult[Dict[str, Any]]:
    return await _authed(session, lambda token: api.progress.get(token))


async def load_assignment(api: ApiClient, session: SessionContext, module_slug: str) -> PageResult[Dict[str, Any]]:
    return await _authed(session, lambda token: api.assignments.get(module_slug, token))


async def load_submissions(api: ApiClient, session: SessionContext) -> PageResult[list]:
    async def _run(token: str):
        resp = await api.submissions.list(token)
        return list(resp.get("submissions") or [])

    return await _authed(session, _run)


async def load_submission(api: ApiClient, session: SessionContext, submission_id: str) -> PageResult[Dict[str, Any]]:
    return await _authed(session, lambda token: api.submissions.get(submission_id, token))


async def submit_assignment(
    api: ApiClient,
    session: SessionContext,
    *,
    assignment_id: str,
    github_url: str,
    written_answers: str,
) -> PageResult[Dict[str, Any]]:
    return await _authed(
        session,
        lambda token: api.submissions.create(assignment_id, github_url, written_answers, token),
    )


async def start_checkout(api: ApiClient, session: SessionContext) -> PageResult[str]:
    """Create a checkout session and return the URL to send the user to."""

    async def _run(token: str):
        resp = await api.payments.checkout(token)
        return resp["url"]

    return await _authed(session, _run)


async def load_subscription(api: ApiClient, session: SessionContext) -> PageResult[Dict[str, Any]]:
    return await _authed(session, lambda token: api.payments.subscription(token))
