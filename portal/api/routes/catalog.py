"""Service catalog routes."""

from fastapi import APIRouter

from portal.api.middleware.error_handler import NotFoundError
from portal.schemas.order import ServiceListResponse, ServiceResponse
from portal.services.catalog_service import CatalogService

router = APIRouter(prefix="/services", tags=["catalog"])


@router.get(
    "",
    response_model=ServiceListResponse,
    summary="List services",
    description="List service packages that can be ordered.",
)
async def list_services() -> ServiceListResponse:
    """List active services, cheapest first."""
    services = await CatalogService().list_active_services()
    return ServiceListResponse(items=[ServiceResponse.model_validate({**s, "id": str(s["id"])}) for s in services])


@router.get(
    "/{service_id}",
    response_model=ServiceResponse,
    summary="Get service",
)
async def get_service(service_id: str) -> ServiceResponse:
    """Get a service package.

    Raises:
        NotFoundError: 404 if the service does not exist or is inactive.
    """
    service = await CatalogService().get_service(service_id)
    if not service or not service.get("is_active", True):
        raise NotFoundError("Service not found")
    return ServiceResponse.model_validate({**service, "id": str(service["id"])})
