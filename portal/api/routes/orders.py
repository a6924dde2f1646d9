"""Order API routes."""

import logging

from fastapi import APIRouter, Depends

from portal.api.deps import CurrentUser, RateLimit
from portal.api.middleware.error_handler import ConfigurationError, GatewayError
from portal.core.audit import audit_log
from portal.schemas.order import (
    OrderCreateRequest,
    OrderCreateResponse,
    OrderListResponse,
    OrderResponse,
    PaymentUrlResponse,
)
from portal.services.order_service import OrderService
from portal.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "",
    response_model=OrderCreateResponse,
    dependencies=[Depends(RateLimit("payment"))],
    summary="Create order",
    description="Create a pending order and prepare a hosted payment page for it.",
)
async def create_order(data: OrderCreateRequest, user: CurrentUser) -> OrderCreateResponse:
    """Create an order and initialize its payment.

    The order is kept even if the payment provider cannot be reached. In
    that case ``payment_status`` is ``failed_to_initialize`` and the client
    retries with the reactivate-payment endpoint.

    Raises:
        AuthenticationError: 401 if not logged in.
        ValidationError: 400 if the amount or contact details are invalid.
        NotFoundError: 404 if the service does not exist.
    """
    orders = OrderService()
    order = await orders.create_order(user, data)

    try:
        payment = await PaymentService().initialize_transaction(
            order,
            orders.contact_email(order, fallback=user["email"]),
        )
    except GatewayError as e:
        logger.error("Payment initialization failed for order %s: %s", order["id"], e.detail)
        audit_log("payment_initialization_failed", str(user["id"]), order_id=str(order["id"]))
        return OrderCreateResponse(order=OrderResponse.from_row(order), payment_status="failed_to_initialize")
    except ConfigurationError as e:
        logger.error("Payment initialization skipped for order %s: %s", order["id"], e.message)
        return OrderCreateResponse(order=OrderResponse.from_row(order), payment_status="failed_to_initialize")

    return OrderCreateResponse(
        order=OrderResponse.from_row(order),
        payment_status="initialized",
        payment_url=payment["payment_url"],
        payment_reference=payment["reference"],
    )


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List my orders",
    description="List the current user's orders, newest first.",
)
async def list_orders(user: CurrentUser) -> OrderListResponse:
    """List the current user's orders."""
    orders = await OrderService().list_orders_for_user(user["id"])
    return OrderListResponse(items=[OrderResponse.from_row(o) for o in orders])


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
    description="Get one of the current user's orders.",
)
async def get_order(order_id: str, user: CurrentUser) -> OrderResponse:
    """Get an order by ID.

    Raises:
        NotFoundError: 404 if missing or owned by someone else.
    """
    order = await OrderService().get_order_for_user(order_id, user)
    return OrderResponse.from_row(order)


@router.delete(
    "/{order_id}",
    response_model=OrderResponse,
    dependencies=[Depends(RateLimit("order_cancel"))],
    summary="Cancel order",
    description="Cancel one of the current user's pending orders.",
)
async def cancel_order(order_id: str, user: CurrentUser) -> OrderResponse:
    """Cancel a pending order.

    Raises:
        NotFoundError: 404 if missing or owned by someone else.
        ValidationError: 400 if the order is not pending.
    """
    order = await OrderService().cancel_order(order_id, user)
    return OrderResponse.from_row(order)


@router.post(
    "/{order_id}/reactivate-payment",
    response_model=PaymentUrlResponse,
    dependencies=[Depends(RateLimit("payment_reactivation"))],
    summary="Retry payment",
    description="Create a new hosted payment page for a pending order.",
)
async def reactivate_payment(order_id: str, user: CurrentUser) -> PaymentUrlResponse:
    """Start a fresh payment for a pending order.

    Raises:
        NotFoundError: 404 if missing or owned by someone else.
        ValidationError: 400 if the order is not pending.
        ConfigurationError: 503 if payments are not configured.
        GatewayError: 502 if the provider fails.
    """
    orders = OrderService()
    order = await orders.get_payable_order(order_id, user)
    payment = await PaymentService().initialize_transaction(
        order,
        orders.contact_email(order, fallback=user["email"]),
    )
    audit_log("payment_reactivated", str(user["id"]), order_id=str(order_id))
    return PaymentUrlResponse(payment_url=payment["payment_url"], reference=payment["reference"])
