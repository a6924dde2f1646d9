"""Checkout session model type definitions for database operations."""

from datetime import datetime
from typing import TypedDict
from uuid import UUID


class CheckoutSession(TypedDict):
    """Pre-authentication cart row representation.

    A row past ``expires_at`` is treated as expired whatever else it holds.
    """

    id: UUID
    session_token: str
    service_id: UUID
    service_data: dict
    contact_data: dict | None
    selected_add_ons: list
    total_price: float
    user_id: UUID | None
    expires_at: datetime
    created_at: datetime
