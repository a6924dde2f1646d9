"""Order and payment model type definitions for database operations."""

from datetime import datetime
from typing import Literal, TypedDict
from uuid import UUID

OrderStatus = Literal["pending", "paid", "in_progress", "complete", "cancelled"]

PaymentStatus = Literal["pending", "succeeded", "failed", "refunded"]

ORDER_STATUSES: tuple[str, ...] = ("pending", "paid", "in_progress", "complete", "cancelled")

# Statuses a successful payment may move to paid
PAYABLE_ORDER_STATUSES: tuple[str, ...] = ("pending", "cancelled")


class CustomRequest(TypedDict, total=False):
    """Structure stored JSON-encoded in ``orders.custom_request``."""

    contact_info: dict
    project_details: dict
    selected_add_ons: list
    timeline: str | None
    payment_method: str


class Order(TypedDict):
    """Order table row representation."""

    id: UUID
    user_id: UUID
    service_id: UUID | None
    custom_request: str | None
    total_price: float
    status: OrderStatus
    timeline_days: int | None
    created_at: datetime
    updated_at: datetime


class Payment(TypedDict):
    """Payment table row representation.

    ``provider_reference`` is unique and is the idempotency key for
    webhook and callback application.
    """

    id: UUID
    user_id: UUID
    order_id: UUID
    amount: float
    currency: str
    provider: str
    provider_reference: str
    status: PaymentStatus
    paid_at: datetime | None
    created_at: datetime


class Service(TypedDict):
    """Service catalog row representation."""

    id: UUID
    name: str
    description: str | None
    price: float
    category: str | None
    duration: str | None
    duration_days: int | None
    is_active: bool
