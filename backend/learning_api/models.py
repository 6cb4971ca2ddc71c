"""
Data-transfer shapes returned by the Level Up backend.

These are TypedDicts over the backend's snake_case JSON. They are a static
contract only: the API client trusts the backend and does not validate
responses at runtime. All values are read-only snapshots; refresh them by
re-fetching after a mutating call.
"""
from __future__ import annotations

from typing import List, Literal, Optional, TypedDict

SubscriptionStatus = Literal["free", "active", "cancelled", "past_due"]
SubmissionStatus = Literal["pending", "reviewed", "approved", "needs_revision"]


class User(TypedDict):
    id: str
    email: str
    name: str
    subscription_status: SubscriptionStatus


class TokenPair(TypedDict):
    access_token: str
    refresh_token: str


class AuthResponse(TokenPair):
    user: User


class Module(TypedDict):
    id: str
    title: str
    slug: str
    description: str
    order_index: int
    estimated_hours: float


class LessonSummary(TypedDict):
    id: str
    title: str
    slug: str
    order_index: int
    estimated_minutes: int


class ModuleDetail(Module):
    total_lessons: int
    completed_lessons: int
    lessons: List[LessonSummary]


class Lesson(TypedDict):
    id: str
    module_id: str
    title: str
    slug: str
    content: str
    order_index: int
    estimated_minutes: int


class Skill(TypedDict):
    id: str
    skill_name: str
    order_index: int


class Progress(TypedDict):
    completed_lesson_ids: List[str]
    completed_skill_ids: List[str]


class Assignment(TypedDict):
    id: str
    module_id: str
    title: str
    description: str
    rubric: str
    estimated_hours: float


class Submission(TypedDict):
    id: str
    assignment_id: str
    user_id: str
    github_url: str
    written_answers: str
    status: SubmissionStatus
    feedback: Optional[str]
    submitted_at: str
    reviewed_at: Optional[str]


class ModuleList(TypedDict):
    modules: List[Module]


class SkillList(TypedDict):
    skills: List[Skill]


class SubmissionList(TypedDict):
    submissions: List[Submission]


class StatusResponse(TypedDict):
    status: str


class CheckoutSession(TypedDict):
    url: str


class Subscription(TypedDict):
    subscription_status: str
    stripe_subscription_id: Optional[str]


def completion_percent(detail: ModuleDetail) -> float:
    """Return the completed share of a module's lessons in percent.

    A module without lessons is 0% complete. The result is clamped to 0..100.
    """
    total = detail.get("total_lessons") or 0
    if total <= 0:
        return 0.0
    done = detail.get("completed_lessons") or 0
    return max(0.0, min(100.0, done / total * 100))


def is_completed(progress: Progress, lesson_id: str) -> bool:
    return lesson_id in set(progress.get("completed_lesson_ids") or [])
