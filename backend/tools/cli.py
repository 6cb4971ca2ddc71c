"""Terminal client for the Level Up learning platform.

Why:
    Same data-fetching contract as the dashboard pages, driven from a shell:
    credentials live in a local session file (the equivalent of browser local
    storage) and every command goes through the page loaders.

Usage:
    lub login --email you@example.com
    lub modules
    lub module go-concurrency
    lub complete-lesson 5b0c...
    lub submit --assignment-id ... --github-url https://github.com/you/repo
    lub logout

Notes:
    - Tokens are never printed. `lub status` only reports whether they exist.
    - There is no automatic refresh on 401; run `lub refresh` explicitly.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable

import click

from identity_access.domain import SUBMISSION_STATUSES, SUBSCRIPTION_STATUSES
from identity_access.session import FileStorage, SessionContext, TokenStore, default_session_path
from learning_api import pages
from learning_api.client import ApiClient
from learning_api.models import completion_percent
from learning_api.pages import PageResult


@dataclass
class CliState:
    api: ApiClient
    session: SessionContext


def _run(coro: Awaitable[PageResult]) -> Any:
    result = asyncio.run(coro)  # type: ignore[arg-type]
    if not result.ok:
        raise click.ClickException(result.error or "Something went wrong")
    return result.data


def _label(value: str, known: frozenset) -> str:
    # Unrecognised values are shown verbatim and flagged.
    if value in known:
        return value.replace("_", " ")
    return f"{value} (unrecognised)"


def _state(ctx: click.Context) -> CliState:
    return ctx.obj


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--api-url", default=None, help="Backend base URL (default from API_URL or http://localhost:8080).")
@click.option(
    "--session-file",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Where credentials are stored (default from LUB_SESSION_FILE or ~/.levelup/session.json).",
)
@click.pass_context
def cli(ctx: click.Context, api_url: str | None, session_file: Path | None) -> None:
    """Level Up Backend: lessons, progress and submissions from your terminal."""
    from web.config import load_dotenv_if_enabled, load_settings, validate_api_url

    load_dotenv_if_enabled()
    try:
        settings = load_settings()
        base_url = validate_api_url(api_url.strip()) if api_url else settings.api_url
    except ValueError as exc:
        raise click.ClickException(str(exc))
    api = ApiClient(base_url, timeout=settings.api_timeout_seconds)
    store = TokenStore(FileStorage(session_file or default_session_path()))
    ctx.obj = CliState(api=api, session=SessionContext.open(store))


# --- Account ----------------------------------------------------------------------


@cli.command()
@click.option("--email", prompt=True)
@click.option("--password", prompt=True, hide_input=True)
@click.pass_context
def login(ctx: click.Context, email: str, password: str) -> None:
    """Sign in and store the credential pair locally."""
    st = _state(ctx)
    user = _run(pages.sign_in(st.api, st.session, email=email, password=password))
    click.echo(f"Signed in as {user.get('name') or user.get('email')}.")


@cli.command()
@click.option("--email", prompt=True)
@click.option("--name", prompt=True)
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.pass_context
def register(ctx: click.Context, email: str, name: str, password: str) -> None:
    """Create an account and sign in."""
    st = _state(ctx)
    user = _run(pages.sign_up(st.api, st.session, email=email, password=password, name=name))
    click.echo(f"Welcome, {user.get('name') or user.get('email')}!")


@cli.command()
@click.pass_context
def logout(ctx: click.Context) -> None:
    """Forget the stored credentials."""
    pages.sign_out(_state(ctx).session)
    click.echo("Signed out.")


@cli.command()
@click.pass_context
def refresh(ctx: click.Context) -> None:
    """Exchange the refresh token for a new credential pair."""
    st = _state(ctx)
    _run(pages.refresh_session(st.api, st.session))
    click.echo("Session refreshed.")


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show whether credentials are stored and the subscription state."""
    st = _state(ctx)
    if not st.session.access_token:
        click.echo("Not signed in.")
        return
    click.echo("Signed in.")
    result = asyncio.run(pages.load_subscription(st.api, st.session))
    if result.ok:
        click.echo(f"Subscription: {_label(result.data['subscription_status'], SUBSCRIPTION_STATUSES)}")
    else:
        click.echo(f"Subscription: unavailable ({result.error})")


# --- Learning -----------------------------------------------------------------------


@cli.command()
@click.pass_context
def modules(ctx: click.Context) -> None:
    """List modules in course order."""
    st = _state(ctx)
    data = _run(pages.load_dashboard(st.api, st.session))
    for m in data["modules"]:
        click.echo(f"{m['order_index']:>2}. {m['title']} [{m['slug']}] · {m['estimated_hours']}h")
    click.echo(f"Lessons completed: {data['completed_lessons']} · Skills checked off: {data['completed_skills']}")


@cli.command()
@click.argument("slug")
@click.pass_context
def module(ctx: click.Context, slug: str) -> None:
    """Show a module with its lessons and completion."""
    st = _state(ctx)
    data = _run(pages.load_module(st.api, st.session, slug))
    detail = data["module"]
    click.echo(detail["title"])
    click.echo(detail.get("description") or "")
    click.echo(
        f"{detail['completed_lessons']}/{detail['total_lessons']} lessons complete "
        f"({completion_percent(detail):.0f}%) · {detail['estimated_hours']}h estimated"
    )
    for i, lesson in enumerate(detail.get("lessons") or [], start=1):
        click.echo(f"{i:>3}  {lesson['title']} [{lesson['slug']}] {lesson['estimated_minutes']}m")


@cli.command()
@click.argument("module_slug")
@click.argument("lesson_slug")
@click.pass_context
def lesson(ctx: click.Context, module_slug: str, lesson_slug: str) -> None:
    """Print a lesson's content."""
    st = _state(ctx)
    data = _run(pages.load_lesson(st.api, st.session, module_slug, lesson_slug))
    item = data["lesson"]
    mark = " (completed)" if data["completed"] else ""
    click.echo(f"{item['title']}{mark} · {item['estimated_minutes']}m · id {item['id']}")
    click.echo("")
    click.echo(item.get("content") or "")


@cli.command("complete-lesson")
@click.argument("lesson_id")
@click.pass_context
def complete_lesson(ctx: click.Context, lesson_id: str) -> None:
    """Mark a lesson as complete."""
    st = _state(ctx)
    progress = _run(pages.complete_lesson(st.api, st.session, lesson_id))
    click.echo(f"Lesson completed. Lessons completed: {len(progress.get('completed_lesson_ids') or [])}")


@cli.command()
@click.argument("module_slug")
@click.pass_context
def skills(ctx: click.Context, module_slug: str) -> None:
    """List a module's skills with their checked state."""
    st = _state(ctx)
    data = _run(pages.load_skills(st.api, st.session, module_slug))
    for s in data["skills"]:
        box = "[x]" if s["completed"] else "[ ]"
        click.echo(f"{box} {s['skill_name']} ({s['id']})")


@cli.command("complete-skill")
@click.argument("skill_id")
@click.pass_context
def complete_skill(ctx: click.Context, skill_id: str) -> None:
    """Check off a skill."""
    st = _state(ctx)
    progress = _run(pages.complete_skill(st.api, st.session, skill_id))
    click.echo(f"Skill checked off. Skills checked off: {len(progress.get('completed_skill_ids') or [])}")


@cli.command()
@click.pass_context
def progress(ctx: click.Context) -> None:
    """Show completion counters."""
    st = _state(ctx)
    data = _run(pages.load_progress(st.api, st.session))
    lessons_done = len(data.get("completed_lesson_ids") or [])
    click.echo(f"Lessons completed: {lessons_done}")
    click.echo(f"Skills checked off: {len(data.get('completed_skill_ids') or [])}")
    if lessons_done == 0:
        click.echo("No lessons completed yet. Start with Module 1.")


# --- Assignments & submissions ----------------------------------------------------


@cli.command()
@click.argument("module_slug")
@click.pass_context
def assignment(ctx: click.Context, module_slug: str) -> None:
    """Show a module's assignment."""
    st = _state(ctx)
    data = _run(pages.load_assignment(st.api, st.session, module_slug))
    click.echo(f"{data['title']} · {data['estimated_hours']}h · id {data['id']}")
    click.echo(data.get("description") or "")
    if data.get("rubric"):
        click.echo("")
        click.echo("Rubric:")
        click.echo(data["rubric"])


@cli.command()
@click.pass_context
def submissions(ctx: click.Context) -> None:
    """List your submissions and their review state."""
    st = _state(ctx)
    items = _run(pages.load_submissions(st.api, st.session))
    if not items:
        click.echo("No submissions yet. Complete a module assignment to submit.")
        return
    for s in items:
        click.echo(f"{s['id']}  {_label(s['status'], SUBMISSION_STATUSES):<14} {s['github_url']}")
        if s.get("feedback"):
            click.echo(f"    Feedback: {s['feedback']}")


@cli.command()
@click.argument("submission_id")
@click.pass_context
def submission(ctx: click.Context, submission_id: str) -> None:
    """Show one submission."""
    st = _state(ctx)
    s = _run(pages.load_submission(st.api, st.session, submission_id))
    click.echo(f"{s['github_url']} · {_label(s['status'], SUBMISSION_STATUSES)}")
    click.echo(f"Submitted {s['submitted_at']}" + (f" · reviewed {s['reviewed_at']}" if s.get("reviewed_at") else ""))
    if s.get("feedback"):
        click.echo(f"Feedback: {s['feedback']}")


@cli.command()
@click.option("--assignment-id", required=True)
@click.option("--github-url", required=True)
@click.option("--answers", "written_answers", default="", help="Written answers (use @file to read from a file).")
@click.pass_context
def submit(ctx: click.Context, assignment_id: str, github_url: str, written_answers: str) -> None:
    """Submit an assignment for review."""
    if written_answers.startswith("@"):
        answers_path = Path(written_answers[1:])
        try:
            written_answers = answers_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise click.ClickException(f"Cannot read answers file {answers_path}: {exc.__class__.__name__}")
    st = _state(ctx)
    s = _run(
        pages.submit_assignment(
            st.api, st.session, assignment_id=assignment_id, github_url=github_url, written_answers=written_answers
        )
    )
    click.echo(f"Submitted ({_label(s['status'], SUBMISSION_STATUSES)}). id {s['id']}")


# --- Billing ------------------------------------------------------------------------


@cli.command()
@click.pass_context
def checkout(ctx: click.Context) -> None:
    """Start a subscription checkout and print the payment URL."""
    st = _state(ctx)
    url = _run(pages.start_checkout(st.api, st.session))
    click.echo(url)


@cli.command()
@click.pass_context
def subscription(ctx: click.Context) -> None:
    """Show the subscription status."""
    st = _state(ctx)
    data = _run(pages.load_subscription(st.api, st.session))
    click.echo(_label(data["subscription_status"], SUBSCRIPTION_STATUSES))


if __name__ == "__main__":  # pragma: no cover
    cli()
