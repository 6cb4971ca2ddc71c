"""
Page loader tests: how dashboard pages fetch data and surface errors.

Requirements:
- no access token → "Not authenticated" and no network call
- backend errors → message text + status, never raised
- transport errors → generic "Network error"
- sign-in stores tokens verbatim; refresh is explicit
- completion percentage never divides by zero
"""
from __future__ import annotations

import json

import httpx
import pytest

from identity_access.session import MemoryStorage, SessionContext, TokenStore
from learning_api import pages
from learning_api.client import ApiClient
from learning_api.models import completion_percent, is_completed


class Backend:
    """Tiny routing MockTransport handler: {(method, path): (status, body)}."""

    def __init__(self, routes):
        self.routes = routes
        self.calls: list[tuple[str, str]] = []
        self.auth_headers: list[str | None] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        key = (request.method, request.url.path)
        self.calls.append(key)
        self.auth_headers.append(request.headers.get("Authorization"))
        status, body = self.routes.get(key, (404, {"error": "not found"}))
        return httpx.Response(status, json=body)


def _api(backend) -> ApiClient:
    return ApiClient("http://api.test", transport=httpx.MockTransport(backend))


def _session(access: str | None = "tok", refresh: str | None = "ref") -> SessionContext:
    store = TokenStore(MemoryStorage())
    if access and refresh:
        store.set_tokens(access, refresh)
    return SessionContext.open(store)


@pytest.mark.anyio
async def test_unauthenticated_local_makes_no_network_call():
    backend = Backend({})
    result = await pages.load_progress(_api(backend), _session(None, None))
    assert not result.ok
    assert result.error == pages.NOT_AUTHENTICATED
    assert backend.calls == []


@pytest.mark.anyio
async def test_backend_error_becomes_page_error():
    backend = Backend({("GET", "/submissions"): (401, {"error": "invalid token"})})
    result = await pages.load_submissions(_api(backend), _session("expired"))
    assert result.error == "invalid token"
    assert result.status == 401
    assert result.data is None


@pytest.mark.anyio
async def test_transport_error_becomes_generic_error(caplog):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    api = ApiClient("http://api.test", transport=httpx.MockTransport(handler))
    result = await pages.load_progress(api, _session())
    assert result.error == pages.NETWORK_ERROR
    assert result.status is None
    assert "ConnectError" in caplog.text


@pytest.mark.anyio
async def test_sign_in_stores_tokens_and_user():
    user = {"id": "u1", "email": "a@b.c", "name": "Ada", "subscription_status": "free"}
    backend = Backend({("POST", "/auth/login"): (200, {"access_token": "A", "refresh_token": "R", "user": user})})
    session = _session(None, None)
    result = await pages.sign_in(_api(backend), session, email="a@b.c", password="pw")
    assert result.ok and result.data == user
    assert session.store.get_access_token() == "A"
    assert session.store.get_refresh_token() == "R"
    assert session.user == user


@pytest.mark.anyio
async def test_failed_sign_in_leaves_session_untouched():
    backend = Backend({("POST", "/auth/login"): (401, {"error": "invalid credentials"})})
    session = _session("old", "old-r")
    result = await pages.sign_in(_api(backend), session, email="a@b.c", password="bad")
    assert result.error == "invalid credentials"
    assert session.store.get_access_token() == "old"


@pytest.mark.anyio
@pytest.mark.parametrize("missing", ["user", "refresh_token"])
async def test_incomplete_auth_response_stores_nothing(missing):
    body = {"access_token": "A", "refresh_token": "R", "user": {"id": "u1", "email": "a@b.c", "name": "Ada"}}
    del body[missing]
    backend = Backend({("POST", "/auth/login"): (200, body)})
    session = _session(None, None)
    result = await pages.sign_in(_api(backend), session, email="a@b.c", password="pw")
    assert result.error == pages.UNEXPECTED_RESPONSE
    assert session.store.get_access_token() is None
    assert session.store.get_refresh_token() is None


@pytest.mark.anyio
async def test_sign_up_stores_tokens():
    user = {"id": "u2", "email": "n@b.c", "name": "Neo", "subscription_status": "free"}
    backend = Backend({("POST", "/auth/register"): (201, {"access_token": "A2", "refresh_token": "R2", "user": user})})
    session = _session(None, None)
    result = await pages.sign_up(_api(backend), session, email="n@b.c", password="pw12345678", name="Neo")
    assert result.ok
    assert session.access_token == "A2"


@pytest.mark.anyio
async def test_refresh_is_explicit_and_overwrites_pair():
    backend = Backend({("POST", "/auth/refresh"): (200, {"access_token": "A3", "refresh_token": "R3"})})
    session = _session("A1", "R1")
    result = await pages.refresh_session(_api(backend), session)
    assert result.ok
    assert (session.store.get_access_token(), session.store.get_refresh_token()) == ("A3", "R3")


@pytest.mark.anyio
async def test_401_does_not_trigger_refresh():
    backend = Backend({("GET", "/progress"): (401, {"error": "token expired"})})
    await pages.load_progress(_api(backend), _session())
    assert backend.calls == [("GET", "/progress")]


@pytest.mark.anyio
async def test_refresh_without_refresh_token_is_unauthenticated():
    backend = Backend({})
    result = await pages.refresh_session(_api(backend), _session(None, None))
    assert result.error == pages.NOT_AUTHENTICATED
    assert backend.calls == []


def test_sign_out_clears_session():
    session = _session()
    pages.sign_out(session)
    assert session.store.get_access_token() is None
    assert not session.is_authenticated


@pytest.mark.anyio
async def test_dashboard_orders_modules_and_counts_progress():
    backend = Backend(
        {
            ("GET", "/modules"): (200, {"modules": [{"id": "b", "order_index": 2}, {"id": "a", "order_index": 1}]}),
            ("GET", "/progress"): (200, {"completed_lesson_ids": ["l1", "l2"], "completed_skill_ids": ["s1"]}),
        }
    )
    result = await pages.load_dashboard(_api(backend), _session())
    assert [m["id"] for m in result.data["modules"]] == ["a", "b"]
    assert result.data["completed_lessons"] == 2
    assert result.data["completed_skills"] == 1
    assert set(backend.auth_headers) == {"Bearer tok"}


@pytest.mark.anyio
async def test_module_page_with_zero_lessons_is_zero_percent():
    detail = {"id": "m", "slug": "m", "total_lessons": 0, "completed_lessons": 0, "lessons": []}
    backend = Backend({("GET", "/modules/m"): (200, detail)})
    result = await pages.load_module(_api(backend), _session(), "m")
    assert result.data["percent"] == 0.0


@pytest.mark.anyio
async def test_complete_lesson_refetches_progress():
    backend = Backend(
        {
            ("POST", "/lessons/l9/complete"): (200, {"status": "completed"}),
            ("GET", "/progress"): (200, {"completed_lesson_ids": ["l9"], "completed_skill_ids": []}),
        }
    )
    result = await pages.complete_lesson(_api(backend), _session(), "l9")
    assert backend.calls == [("POST", "/lessons/l9/complete"), ("GET", "/progress")]
    assert is_completed(result.data, "l9")


@pytest.mark.anyio
async def test_lesson_page_marks_completion():
    backend = Backend(
        {
            ("GET", "/modules/m/lessons/intro"): (200, {"id": "l1", "title": "Intro", "content": "# Hi"}),
            ("GET", "/progress"): (200, {"completed_lesson_ids": ["l1"], "completed_skill_ids": []}),
        }
    )
    result = await pages.load_lesson(_api(backend), _session(), "m", "intro")
    assert result.data["completed"] is True


@pytest.mark.anyio
async def test_skills_page_merges_completion():
    backend = Backend(
        {
            ("GET", "/modules/m/skills"): (200, {"skills": [{"id": "s2", "skill_name": "B", "order_index": 2}, {"id": "s1", "skill_name": "A", "order_index": 1}]}),
            ("GET", "/progress"): (200, {"completed_lesson_ids": [], "completed_skill_ids": ["s2"]}),
        }
    )
    result = await pages.load_skills(_api(backend), _session(), "m")
    assert [(s["id"], s["completed"]) for s in result.data["skills"]] == [("s1", False), ("s2", True)]


@pytest.mark.anyio
async def test_submit_assignment_posts_snake_case_body():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "sub1", "status": "pending"})

    api = ApiClient("http://api.test", transport=httpx.MockTransport(handler))
    result = await pages.submit_assignment(
        api, _session(), assignment_id="a1", github_url="https://github.com/u/r", written_answers="because"
    )
    assert result.data["status"] == "pending"
    assert seen["body"] == {"assignment_id": "a1", "github_url": "https://github.com/u/r", "written_answers": "because"}


@pytest.mark.anyio
async def test_checkout_returns_url():
    backend = Backend({("POST", "/payments/checkout"): (200, {"url": "https://checkout.stripe.test/s/1"})})
    result = await pages.start_checkout(_api(backend), _session())
    assert result.data == "https://checkout.stripe.test/s/1"


@pytest.mark.parametrize(
    "total,done,expected",
    [(0, 0, 0.0), (4, 1, 25.0), (3, 3, 100.0), (2, 5, 100.0)],
)
def test_completion_percent(total, done, expected):
    assert completion_percent({"total_lessons": total, "completed_lessons": done}) == expected


@pytest.mark.anyio
async def test_non_json_body_becomes_generic_error():
    def handler(request):
        return httpx.Response(502, text="<html>Bad Gateway</html>")

    api = ApiClient("http://api.test", transport=httpx.MockTransport(handler))
    result = await pages.load_progress(api, _session())
    assert result.error == pages.UNEXPECTED_RESPONSE
