"""
Page shell routes (router-only module).

Why:
    The dashboard pages fetch their data on the client with the backend access
    token; the server only serves the document shell. Keeping the shells in a
    router lets `create_app` mount them behind the Access Gate without any
    route knowing whether the gate is active.

Notes:
    - Layout and styling are out of scope; shells carry a title, a mount point
      and, when the identity provider is configured, its browser bundle.
"""

from __future__ import annotations

from html import escape

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse

from identity_access.clerk import AuthMode

pages_router = APIRouter(tags=["Pages"])

APP_TITLE = "Level Up Backend"
APP_DESCRIPTION = "From mid-level to senior backend engineer in 6 months."


def _provider_head(request: Request) -> str:
    settings = request.app.state.settings
    if settings.auth_mode is not AuthMode.CLERK or settings.clerk is None:
        return ""
    key = escape(settings.clerk.publishable_key, quote=True)
    host = settings.clerk.frontend_api
    if not host:
        return f'<meta name="clerk-publishable-key" content="{key}">'
    src = escape(f"https://{host}/npm/@clerk/clerk-js@5/dist/clerk.browser.js", quote=True)
    return f'<script async crossorigin="anonymous" data-clerk-publishable-key="{key}" src="{src}"></script>'


def render_shell(request: Request, title: str, *, page: str, params: dict | None = None) -> HTMLResponse:
    """Render the HTML document shell for one page."""
    data_attrs = "".join(
        f' data-{escape(k)}="{escape(str(v), quote=True)}"' for k, v in (params or {}).items()
    )
    full_title = APP_TITLE if title == APP_TITLE else f"{title} · {APP_TITLE}"
    html = f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8">
    <title>{escape(full_title)}</title>
    <meta name="description" content="{escape(APP_DESCRIPTION, quote=True)}">
    {_provider_head(request)}
</head>
<body>
    <main id="app" data-page="{escape(page)}"{data_attrs}></main>
</body>
</html>"""
    return HTMLResponse(html, headers={"Cache-Control": "private, no-store"})


# --- Public -----------------------------------------------------------------------


@pages_router.get("/", response_class=HTMLResponse)
async def home(request: Request):
    return render_shell(request, APP_TITLE, page="home")


@pages_router.get("/pricing", response_class=HTMLResponse)
async def pricing(request: Request):
    return render_shell(request, "Pricing", page="pricing")


@pages_router.get("/sign-in", response_class=HTMLResponse)
@pages_router.get("/sign-in/{rest:path}", response_class=HTMLResponse)
async def sign_in(request: Request, rest: str = ""):
    redirect = request.query_params.get("redirect_url") or "/dashboard"
    return render_shell(request, "Sign in", page="sign-in", params={"redirect": redirect})


@pages_router.get("/sign-up", response_class=HTMLResponse)
@pages_router.get("/sign-up/{rest:path}", response_class=HTMLResponse)
async def sign_up(request: Request, rest: str = ""):
    return render_shell(request, "Sign up", page="sign-up")


# --- Protected ----------------------------------------------------------------------


@pages_router.get("/dashboard", response_class=HTMLResponse)
async def dashboard(request: Request):
    return render_shell(request, "Dashboard", page="dashboard")


@pages_router.get("/modules/{slug}", response_class=HTMLResponse)
async def module_page(request: Request, slug: str):
    return render_shell(request, "Module", page="module", params={"slug": slug})


@pages_router.get("/modules/{slug}/lessons/{lesson_slug}", response_class=HTMLResponse)
async def lesson_page(request: Request, slug: str, lesson_slug: str):
    return render_shell(request, "Lesson", page="lesson", params={"slug": slug, "lesson": lesson_slug})


@pages_router.get("/modules/{slug}/assignment", response_class=HTMLResponse)
async def assignment_page(request: Request, slug: str):
    return render_shell(request, "Assignment", page="assignment", params={"slug": slug})


@pages_router.get("/progress", response_class=HTMLResponse)
async def progress_page(request: Request):
    return render_shell(request, "Your Progress", page="progress")


@pages_router.get("/submissions", response_class=HTMLResponse)
async def submissions_page(request: Request):
    return render_shell(request, "My Submissions", page="submissions")


@pages_router.get("/api/me")
async def api_me(request: Request):
    """Return the identity provider subject for the current request.

    Permissions:
        Gated like every non-public route when the identity provider is
        configured; without it the subject is null.
    """
    user = getattr(request.state, "user", None) or {}
    settings = request.app.state.settings
    body = {"sub": user.get("sub"), "authMode": settings.auth_mode.value}
    return JSONResponse(body, headers={"Cache-Control": "private, no-store"})


@pages_router.get("/health")
async def health_check():
    # Minimal health endpoint used by orchestrators and tests; open in both auth modes.
    return JSONResponse({"status": "ok"}, headers={"Cache-Control": "private, no-store"})
