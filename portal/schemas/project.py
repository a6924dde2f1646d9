"""Project, message and support request schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from portal.schemas.common import CamelModel

ProjectStatusValue = Literal["not_started", "active", "paused", "completed"]

ProjectStageValue = Literal["Discovery", "Design", "Development", "Testing", "Launch"]


def _stringify_ids(row: dict[str, Any], *keys: str) -> dict[str, Any]:
    data = dict(row)
    for key in keys:
        if data.get(key) is not None:
            data[key] = str(data[key])
    return data


class ProjectResponse(BaseModel):
    """Response schema for a project."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Project ID")
    order_id: str = Field(description="Source order ID")
    user_id: str = Field(description="Owning user ID")
    project_name: str = Field(description="Project name")
    current_stage: ProjectStageValue = Field(description="Current delivery stage")
    notes: str | None = Field(default=None, description="Free-text notes")
    start_date: datetime | None = Field(default=None, description="Start date")
    due_date: datetime | None = Field(default=None, description="Due date")
    status: ProjectStatusValue = Field(description="Project status")
    timeline_weeks: int | None = Field(default=None, description="Timeline length in weeks")
    timeline_days: int | None = Field(default=None, description="Timeline length in days")
    progress_percentage: int = Field(default=0, description="Elapsed share of the timeline (0-100)")

    @classmethod
    def from_row(cls, project: dict[str, Any]) -> "ProjectResponse":
        """Build a response from a projects row."""
        data = _stringify_ids(project, "id", "order_id", "user_id")
        return cls(**{k: v for k, v in data.items() if k in cls.model_fields})


class ProjectListResponse(BaseModel):
    """Response schema for project lists."""

    items: list[ProjectResponse] = Field(description="Projects")


class ProjectUpdateRequest(CamelModel):
    """Admin request to update a project. Only provided fields change."""

    current_stage: ProjectStageValue | None = Field(default=None, description="New stage")
    notes: str | None = Field(default=None, description="Notes", max_length=5000)
    status: ProjectStatusValue | None = Field(default=None, description="New status")
    due_date: datetime | None = Field(default=None, description="Due date override")


class MessageCreateRequest(CamelModel):
    """Request schema for posting a project message."""

    content: str = Field(..., description="Message body", min_length=1, max_length=5000)


class MessageResponse(BaseModel):
    """Response schema for a project message."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Message ID")
    project_id: str = Field(description="Project ID")
    sender_id: str = Field(description="Sender user ID")
    content: str = Field(description="Message body")
    is_admin: bool = Field(default=False, description="Sent by staff")
    sent_at: datetime | None = Field(default=None, description="Timestamp")

    @classmethod
    def from_row(cls, message: dict[str, Any]) -> "MessageResponse":
        """Build a response from a messages row."""
        data = _stringify_ids(message, "id", "project_id", "sender_id")
        return cls(**{k: v for k, v in data.items() if k in cls.model_fields})


class SupportRequestCreate(CamelModel):
    """Request schema for opening a support request."""

    subject: str = Field(..., description="Subject", min_length=1, max_length=200)
    description: str = Field(..., description="Problem description", min_length=1, max_length=5000)
    project_id: str | None = Field(default=None, description="Related project")


class SupportRequestResponse(BaseModel):
    """Response schema for a support request."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Support request ID")
    user_id: str = Field(description="Requesting user ID")
    project_id: str | None = Field(default=None, description="Related project")
    subject: str = Field(description="Subject")
    description: str = Field(description="Problem description")
    status: Literal["open", "in_progress", "resolved"] = Field(description="Status")
    created_at: datetime | None = Field(default=None, description="Creation timestamp")

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SupportRequestResponse":
        """Build a response from a support_requests row."""
        data = _stringify_ids(row, "id", "user_id", "project_id")
        return cls(**{k: v for k, v in data.items() if k in cls.model_fields})


class SupportStatusUpdate(CamelModel):
    """Staff request to change a support request's status."""

    status: Literal["open", "in_progress", "resolved"] = Field(..., description="New status")
