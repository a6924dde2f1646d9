"""Staff routes for order, project and support management."""

import logging

from fastapi import APIRouter

from portal.api.deps import AdminUser, StaffUser
from portal.schemas.order import OrderListResponse, OrderResponse, OrderStatusUpdateRequest
from portal.schemas.project import (
    ProjectListResponse,
    ProjectResponse,
    ProjectUpdateRequest,
    SupportRequestResponse,
    SupportStatusUpdate,
)
from portal.services.catalog_service import CatalogService
from portal.services.order_service import OrderService
from portal.services.project_service import ProjectService
from portal.services.support_service import SupportService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/orders",
    response_model=OrderListResponse,
    summary="List all orders",
)
async def list_all_orders(admin: AdminUser) -> OrderListResponse:
    """List every order, newest first."""
    orders = await OrderService().list_all_orders()
    return OrderListResponse(items=[OrderResponse.from_row(o) for o in orders])


@router.patch(
    "/orders/{order_id}/status",
    response_model=OrderResponse,
    summary="Override order status",
    description="Set an order's status. Marking an order paid also creates its project.",
)
async def update_order_status(
    order_id: str,
    data: OrderStatusUpdateRequest,
    admin: AdminUser,
) -> OrderResponse:
    """Override an order's status.

    Raises:
        AuthorizationError: 403 for non-admins.
        NotFoundError: 404 if the order does not exist.
    """
    order = await OrderService().update_status(order_id, data.status, actor=str(admin["id"]))

    if data.status == "paid":
        service = await CatalogService().get_service(order["service_id"]) if order.get("service_id") else None
        await ProjectService().create_or_activate_project(order, service)

    return OrderResponse.from_row(order)


@router.get(
    "/projects",
    response_model=ProjectListResponse,
    summary="List all projects",
)
async def list_all_projects(staff: StaffUser) -> ProjectListResponse:
    """List every project with live progress."""
    projects = await ProjectService().list_all_projects()
    return ProjectListResponse(items=[ProjectResponse.from_row(p) for p in projects])


@router.patch(
    "/projects/{project_id}",
    response_model=ProjectResponse,
    summary="Update project",
    description="Change a project's stage, notes, status or due date.",
)
async def update_project(project_id: str, data: ProjectUpdateRequest, staff: StaffUser) -> ProjectResponse:
    """Apply a staff update to a project.

    Raises:
        AuthorizationError: 403 for clients.
        NotFoundError: 404 if the project does not exist.
        ValidationError: 400 for a disallowed status transition.
    """
    project = await ProjectService().update_project(project_id, data.model_dump(exclude_none=True))
    logger.info("Project %s updated by %s", project_id, staff["id"])
    return ProjectResponse.from_row(project)


@router.patch(
    "/support-requests/{request_id}",
    response_model=SupportRequestResponse,
    summary="Update support request status",
)
async def update_support_request(
    request_id: str,
    data: SupportStatusUpdate,
    staff: StaffUser,
) -> SupportRequestResponse:
    """Change a support request's status."""
    request = await SupportService().update_status(request_id, data.status, actor=str(staff["id"]))
    return SupportRequestResponse.from_row(request)
