"""Support request routes."""

from fastapi import APIRouter, status

from portal.api.deps import CurrentUser
from portal.schemas.project import SupportRequestCreate, SupportRequestResponse
from portal.services.support_service import SupportService

router = APIRouter(prefix="/support-requests", tags=["support"])


@router.get(
    "",
    response_model=list[SupportRequestResponse],
    summary="List support requests",
    description="Clients see their own requests. Staff see all of them.",
)
async def list_support_requests(user: CurrentUser) -> list[SupportRequestResponse]:
    """List support requests visible to the caller."""
    requests = await SupportService().list_support_requests(user)
    return [SupportRequestResponse.from_row(r) for r in requests]


@router.post(
    "",
    response_model=SupportRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open support request",
)
async def create_support_request(data: SupportRequestCreate, user: CurrentUser) -> SupportRequestResponse:
    """Open a support request.

    Raises:
        NotFoundError: 404 if the referenced project is not visible.
        ValidationError: 400 if subject or description is empty.
    """
    request = await SupportService().create_support_request(
        user,
        subject=data.subject,
        description=data.description,
        project_id=data.project_id,
    )
    return SupportRequestResponse.from_row(request)
