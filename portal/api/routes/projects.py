"""Project and project message routes."""

from fastapi import APIRouter, status

from portal.api.deps import CurrentUser
from portal.schemas.project import (
    MessageCreateRequest,
    MessageResponse,
    ProjectListResponse,
    ProjectResponse,
)
from portal.services.project_service import ProjectService
from portal.services.support_service import SupportService

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get(
    "",
    response_model=ProjectListResponse,
    summary="List my projects",
    description="List the current user's projects. Paid orders without a project get one first.",
)
async def list_projects(user: CurrentUser) -> ProjectListResponse:
    """List the current user's projects with live progress."""
    projects = await ProjectService().list_projects_for_user(user["id"])
    return ProjectListResponse(items=[ProjectResponse.from_row(p) for p in projects])


@router.get(
    "/{project_id}",
    response_model=ProjectResponse,
    summary="Get project",
)
async def get_project(project_id: str, user: CurrentUser) -> ProjectResponse:
    """Get a project the user may see.

    Raises:
        NotFoundError: 404 if missing or not visible.
    """
    service = ProjectService()
    project = await service.get_project_for_user(project_id, user)
    return ProjectResponse.from_row(service.with_progress(project))


@router.get(
    "/{project_id}/messages",
    response_model=list[MessageResponse],
    summary="List project messages",
)
async def list_messages(project_id: str, user: CurrentUser) -> list[MessageResponse]:
    """List a project's messages, oldest first."""
    messages = await SupportService().list_messages(project_id, user)
    return [MessageResponse.from_row(m) for m in messages]


@router.post(
    "/{project_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post project message",
)
async def post_message(project_id: str, data: MessageCreateRequest, user: CurrentUser) -> MessageResponse:
    """Post a message on a project.

    Raises:
        NotFoundError: 404 if missing or not visible.
        ValidationError: 400 if the message is empty.
    """
    message = await SupportService().post_message(project_id, user, data.content)
    return MessageResponse.from_row(message)
