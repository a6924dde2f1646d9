"""Project, message and support request model type definitions."""

from datetime import datetime
from typing import Literal, TypedDict
from uuid import UUID

ProjectStatus = Literal["not_started", "active", "paused", "completed"]

ProjectStage = Literal["Discovery", "Design", "Development", "Testing", "Launch"]

SupportStatus = Literal["open", "in_progress", "resolved"]

PROJECT_STAGES: tuple[str, ...] = ("Discovery", "Design", "Development", "Testing", "Launch")

# Allowed project status transitions
PROJECT_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "not_started": ("active",),
    "active": ("paused", "completed"),
    "paused": ("active", "completed"),
    "completed": (),
}


class Project(TypedDict):
    """Project table row representation. At most one project per order."""

    id: UUID
    order_id: UUID
    user_id: UUID
    project_name: str
    current_stage: ProjectStage
    notes: str | None
    start_date: datetime | None
    due_date: datetime | None
    status: ProjectStatus
    timeline_weeks: int
    timeline_days: int
    progress_percentage: int
    created_at: datetime


class Message(TypedDict):
    """Project message row representation."""

    id: UUID
    project_id: UUID
    sender_id: UUID
    content: str
    is_admin: bool
    sent_at: datetime


class SupportRequest(TypedDict):
    """Support request row representation."""

    id: UUID
    user_id: UUID
    project_id: UUID | None
    subject: str
    description: str
    status: SupportStatus
    created_at: datetime


class Referral(TypedDict):
    """Referral commission row. ``order_id`` is unique."""

    id: UUID
    referrer_id: UUID
    referred_user_id: UUID
    order_id: UUID
    commission_amount: float
    status: str
    created_at: datetime
