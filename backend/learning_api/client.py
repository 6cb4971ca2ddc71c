"""
Typed HTTP client for the Level Up backend API.

Why:
    Single choke-point for all backend communication. Pages and CLI commands
    never build requests themselves; they call one coroutine per endpoint.

Contract:
    - `Content-Type: application/json` on every request; caller headers are
      merged on top. `Authorization: Bearer <token>` is added iff a token is
      given.
    - The response body is parsed as JSON unconditionally.
    - 2xx returns the parsed body unchanged. Other statuses raise `ApiError`
      carrying the HTTP status and the body's `error` field (or a fallback).
    - Transport errors (`httpx.TransportError`) and non-JSON bodies propagate
      unwrapped. No retries, no caching, no automatic token refresh.

Trust boundary:
    Return types are static hints only; responses are not validated at runtime.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, cast
from urllib.parse import quote
import logging

import httpx

from .models import (
    Assignment,
    AuthResponse,
    CheckoutSession,
    Lesson,
    ModuleDetail,
    ModuleList,
    Progress,
    SkillList,
    StatusResponse,
    Submission,
    SubmissionList,
    Subscription,
    TokenPair,
)

logger = logging.getLogger("levelup.api")

DEFAULT_API_URL = "http://localhost:8080"
DEFAULT_ERROR_MESSAGE = "Something went wrong"


class ApiError(Exception):
    """Backend rejected the request with a non-success HTTP status."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message

    def __repr__(self) -> str:
        return f"ApiError(status={self.status!r}, message={self.message!r})"


def _seg(value: str) -> str:
    """Encode one path segment (slugs and ids are interpolated, never joined)."""
    return quote(str(value), safe="")


class ApiClient:
    """Async client bound to one backend base URL.

    Parameters
    ----------
    base_url:
        Backend origin, e.g. `http://localhost:8080`.
    timeout:
        Seconds per request; `None` disables timeouts (fire once, wait).
    transport:
        Optional httpx transport (tests pass `httpx.MockTransport`).
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self.auth = AuthAPI(self)
        self.modules = ModulesAPI(self)
        self.lessons = LessonsAPI(self)
        self.progress = ProgressAPI(self)
        self.skills = SkillsAPI(self)
        self.assignments = AssignmentsAPI(self)
        self.submissions = SubmissionsAPI(self)
        self.payments = PaymentsAPI(self)

    def build_headers(self, headers: Optional[Mapping[str, str]] = None, token: Optional[str] = None) -> Dict[str, str]:
        merged: Dict[str, str] = {"Content-Type": "application/json"}
        if headers:
            merged.update(headers)
        if token:
            merged["Authorization"] = f"Bearer {token}"
        return merged

    async def request(
        self,
        path: str,
        *,
        method: str = "GET",
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        token: Optional[str] = None,
    ) -> Any:
        """Issue one request and return the parsed JSON body.

        Raises `ApiError` for non-2xx responses.
        """
        send_headers = self.build_headers(headers, token)
        kwargs: Dict[str, Any] = {"headers": send_headers}
        if body is not None:
            kwargs["json"] = body
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.request(method, f"{self.base_url}{path}", **kwargs)
        data = resp.json()

        if not resp.is_success:
            message = data.get("error") if isinstance(data, dict) else None
            if not isinstance(message, str) or not message:
                message = DEFAULT_ERROR_MESSAGE
            logger.debug("API %s %s failed with %s", method, path, resp.status_code)
            raise ApiError(resp.status_code, message)
        return data

    async def health(self) -> StatusResponse:
        return cast(StatusResponse, await self.request("/health"))


class _Resource:
    def __init__(self, client: ApiClient):
        self._client = client


class AuthAPI(_Resource):
    async def register(self, email: str, password: str, name: str) -> AuthResponse:
        body = {"email": email, "password": password, "name": name}
        return cast(AuthResponse, await self._client.request("/auth/register", method="POST", body=body))

    async def login(self, email: str, password: str) -> AuthResponse:
        body = {"email": email, "password": password}
        return cast(AuthResponse, await self._client.request("/auth/login", method="POST", body=body))

    async def refresh(self, refresh_token: str) -> TokenPair:
        body = {"refresh_token": refresh_token}
        return cast(TokenPair, await self._client.request("/auth/refresh", method="POST", body=body))


class ModulesAPI(_Resource):
    async def list(self, token: Optional[str]) -> ModuleList:
        return cast(ModuleList, await self._client.request("/modules", token=token))

    async def get(self, slug: str, token: Optional[str]) -> ModuleDetail:
        return cast(ModuleDetail, await self._client.request(f"/modules/{_seg(slug)}", token=token))


class LessonsAPI(_Resource):
    async def get(self, module_slug: str, lesson_slug: str, token: Optional[str]) -> Lesson:
        path = f"/modules/{_seg(module_slug)}/lessons/{_seg(lesson_slug)}"
        return cast(Lesson, await self._client.request(path, token=token))

    async def complete(self, lesson_id: str, token: Optional[str]) -> StatusResponse:
        path = f"/lessons/{_seg(lesson_id)}/complete"
        return cast(StatusResponse, await self._client.request(path, method="POST", token=token))


class ProgressAPI(_Resource):
    async def get(self, token: Optional[str]) -> Progress:
        return cast(Progress, await self._client.request("/progress", token=token))


class SkillsAPI(_Resource):
    async def list(self, module_slug: str, token: Optional[str]) -> SkillList:
        return cast(SkillList, await self._client.request(f"/modules/{_seg(module_slug)}/skills", token=token))

    async def complete(self, skill_id: str, token: Optional[str]) -> StatusResponse:
        path = f"/skills/{_seg(skill_id)}/complete"
        return cast(StatusResponse, await self._client.request(path, method="POST", token=token))


class AssignmentsAPI(_Resource):
    async def get(self, module_slug: str, token: Optional[str]) -> Assignment:
        path = f"/modules/{_seg(module_slug)}/assignment"
        return cast(Assignment, await self._client.request(path, token=token))


class SubmissionsAPI(_Resource):
    async def list(self, token: Optional[str]) -> SubmissionList:
        return cast(SubmissionList, await self._client.request("/submissions", token=token))

    async def get(self, submission_id: str, token: Optional[str]) -> Submission:
        return cast(Submission, await self._client.request(f"/submissions/{_seg(submission_id)}", token=token))

    async def create(self, assignment_id: str, github_url: str, written_answers: str, token: Optional[str]) -> Submission:
        body = {
            "assignment_id": assignment_id,
            "github_url": github_url,
            "written_answers": written_answers,
        }
        return cast(Submission, await self._client.request("/submissions", method="POST", body=body, token=token))


class PaymentsAPI(_Resource):
    async def checkout(self, token: Optional[str]) -> CheckoutSession:
        return cast(CheckoutSession, await self._client.request("/payments/checkout", method="POST", token=token))

    async def subscription(self, token: Optional[str]) -> Subscription:
        return cast(Subscription, await self._client.request("/payments/subscription", token=token))
