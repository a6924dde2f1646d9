"""Checkout session schemas for the pre-login cart handoff."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from portal.schemas.common import CamelModel


class CheckoutSessionCreate(CamelModel):
    """Request schema for starting a checkout session."""

    service_id: str = Field(..., description="Service package ID")
    contact_data: dict[str, Any] | None = Field(default=None, description="Contact details entered so far")
    selected_add_ons: list[Any] = Field(default_factory=list, description="Selected add-ons")
    total_price: float | None = Field(default=None, description="Cart total (defaults to the service price)")


class CheckoutSessionUpdate(CamelModel):
    """Request schema for updating a checkout session. Only provided fields change."""

    contact_data: dict[str, Any] | None = Field(default=None, description="Contact details")
    selected_add_ons: list[Any] | None = Field(default=None, description="Selected add-ons")
    total_price: float | None = Field(default=None, description="Cart total")


class CheckoutSessionResponse(BaseModel):
    """Response schema for a checkout session."""

    model_config = ConfigDict(from_attributes=True)

    session_token: str = Field(description="Opaque checkout token")
    service_id: str = Field(description="Service package ID")
    service_data: dict[str, Any] = Field(default_factory=dict, description="Service snapshot taken at creation")
    contact_data: dict[str, Any] | None = Field(default=None, description="Contact details")
    selected_add_ons: list[Any] = Field(default_factory=list, description="Selected add-ons")
    total_price: float = Field(description="Cart total")
    user_id: str | None = Field(default=None, description="Owner once logged in")
    expires_at: datetime = Field(description="Expiry timestamp")

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CheckoutSessionResponse":
        """Build a response from a checkout_sessions row."""
        return cls(
            session_token=row["session_token"],
            service_id=str(row["service_id"]),
            service_data=row.get("service_data") or {},
            contact_data=row.get("contact_data"),
            selected_add_ons=row.get("selected_add_ons") or [],
            total_price=float(row.get("total_price") or 0),
            user_id=str(row["user_id"]) if row.get("user_id") else None,
            expires_at=row["expires_at"],
        )
