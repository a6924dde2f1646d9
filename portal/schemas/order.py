"""Order, payment and catalog schemas."""

import json
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from portal.schemas.common import CamelModel

OrderStatusValue = Literal["pending", "paid", "in_progress", "complete", "cancelled"]

PaymentInitStatus = Literal["initialized", "failed_to_initialize"]


class ContactInfo(CamelModel):
    """Contact details captured at checkout."""

    full_name: str = Field(..., description="Contact name", min_length=1, max_length=200)
    email: str = Field(..., description="Contact email", max_length=255)
    phone: str | None = Field(default=None, description="Contact phone", max_length=50)
    company: str | None = Field(default=None, description="Company name", max_length=200)


class OrderCreateRequest(CamelModel):
    """Request schema for submitting an order."""

    service_id: str | None = Field(default=None, description="Service package ID (null for custom requests)")
    contact_info: ContactInfo = Field(..., description="Contact details")
    project_details: dict[str, Any] = Field(default_factory=dict, description="Free-form project brief")
    selected_add_ons: list[Any] = Field(default_factory=list, description="Selected add-ons")
    total_amount: float = Field(..., description="Order total in major currency units")
    timeline: str | None = Field(default=None, description="Requested timeline, e.g. '2-3 weeks'", max_length=100)
    payment_method: str = Field(default="paystack", description="Payment method", max_length=50)


class OrderResponse(BaseModel):
    """Response schema for a single order."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Order ID")
    user_id: str = Field(description="Owning user ID")
    service_id: str | None = Field(default=None, description="Service package ID")
    total_price: float = Field(description="Order total")
    status: OrderStatusValue = Field(description="Order status")
    timeline_days: int | None = Field(default=None, description="Planned project length in days")
    custom_request: dict[str, Any] | None = Field(default=None, description="Decoded checkout details")
    created_at: datetime | None = Field(default=None, description="Creation timestamp")
    updated_at: datetime | None = Field(default=None, description="Last update timestamp")

    @classmethod
    def from_row(cls, order: dict[str, Any]) -> "OrderResponse":
        """Build a response from an orders row, decoding ``custom_request``."""
        custom_request = order.get("custom_request")
        if isinstance(custom_request, str):
            try:
                custom_request = json.loads(custom_request)
            except ValueError:
                custom_request = {"raw": custom_request}
        return cls(
            id=str(order["id"]),
            user_id=str(order["user_id"]),
            service_id=str(order["service_id"]) if order.get("service_id") else None,
            total_price=float(order.get("total_price") or 0),
            status=order["status"],
            timeline_days=order.get("timeline_days"),
            custom_request=custom_request,
            created_at=order.get("created_at"),
            updated_at=order.get("updated_at"),
        )


class OrderCreateResponse(BaseModel):
    """Response schema for order creation.

    ``payment_status`` says explicitly whether a hosted payment page was
    prepared. On ``failed_to_initialize`` the order still exists and the
    client retries through the reactivate-payment endpoint.
    """

    order: OrderResponse = Field(description="Created order")
    payment_status: PaymentInitStatus = Field(description="Payment initialization outcome")
    payment_url: str | None = Field(default=None, description="Hosted payment page URL")
    payment_reference: str | None = Field(default=None, description="Payment reference")


class OrderListResponse(BaseModel):
    """Response schema for order lists."""

    items: list[OrderResponse] = Field(description="Orders, newest first")


class PaymentUrlResponse(BaseModel):
    """Response schema for payment reactivation."""

    payment_url: str = Field(description="Hosted payment page URL")
    reference: str = Field(description="Payment reference")


class OrderStatusUpdateRequest(CamelModel):
    """Admin request to override an order's status."""

    status: OrderStatusValue = Field(..., description="New order status")


class WebhookAck(BaseModel):
    """Acknowledgement returned to the payment provider."""

    status: Literal["success", "ignored", "rejected", "retry"] = Field(description="Processing outcome")


class ServiceResponse(BaseModel):
    """Service catalog entry."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Service ID")
    name: str = Field(description="Service name")
    description: str | None = Field(default=None, description="Description")
    price: float = Field(description="Base price")
    category: str | None = Field(default=None, description="Category")
    duration: str | None = Field(default=None, description="Human-readable duration")
    duration_days: int | None = Field(default=None, description="Structured duration in days")
    is_active: bool = Field(default=True, description="Whether the service can be ordered")


class ServiceListResponse(BaseModel):
    """Response schema for the service catalog."""

    items: list[ServiceResponse] = Field(description="Active services")
