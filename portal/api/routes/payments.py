"""Payment provider callback and webhook routes."""

import json
import logging

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from portal.api.deps import RateLimit, client_address
from portal.api.middleware.error_handler import ReconciliationError, ValidationError
from portal.core.audit import audit_log
from portal.core.paystack import SIGNATURE_HEADER
from portal.schemas.order import WebhookAck
from portal.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

SUCCESS_EVENT = "charge.success"


@router.get(
    "/callback",
    status_code=status.HTTP_302_FOUND,
    response_class=RedirectResponse,
    summary="Payment return URL",
    description="Browser lands here after the hosted payment page. Always redirects to the frontend.",
)
async def payment_callback(reference: str | None = Query(default=None)) -> RedirectResponse:
    """Verify the transaction with the provider and redirect the browser.

    The query string is not trusted: the order only changes when the
    provider's verify endpoint reports success.
    """
    url = await PaymentService().handle_callback(reference)
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


@router.post(
    "/webhook",
    response_model=WebhookAck,
    dependencies=[Depends(RateLimit("payment_webhook"))],
    responses={
        400: {"description": "Invalid signature"},
        503: {"description": "Temporary failure, provider should retry"},
    },
    summary="Paystack webhook",
    description="Receives signed Paystack events. Only charge.success changes state.",
)
async def paystack_webhook(request: Request) -> JSONResponse:
    """Handle a Paystack webhook event.

    The signature is an HMAC-SHA512 of the raw body and is checked before
    the body is parsed. Malformed payloads are acknowledged so the provider
    stops redelivering them. Temporary failures answer 503 so it retries.

    Args:
        request: FastAPI request object for reading raw body and headers.

    Returns:
        JSONResponse: ``{"status": ...}`` acknowledgement.

    Raises:
        ValidationError: 400 if the signature is missing or invalid.
    """
    payload = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)

    service = PaymentService()
    if not service.verify_webhook_signature(payload, signature):
        audit_log(
            "webhook_signature_invalid",
            None,
            client_address=client_address(request),
            signature_present=bool(signature),
        )
        raise ValidationError("Invalid signature")

    try:
        event = json.loads(payload)
    except ValueError:
        logger.error("Webhook body is not valid JSON (%d bytes)", len(payload))
        return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "rejected"})

    event_type = event.get("event", "") if isinstance(event, dict) else ""
    if event_type != SUCCESS_EVENT:
        logger.info("Ignoring Paystack event %s", event_type or "<none>")
        return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "ignored"})

    try:
        result = await service.apply_successful_payment(event.get("data"))
    except ReconciliationError as e:
        if e.retryable:
            logger.warning("Webhook could not be applied yet: %s", e.message)
            return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"status": "retry"})
        logger.error("Webhook permanently rejected: %s", e.message)
        return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "rejected"})

    logger.info("Processed %s for %s (applied=%s)", event_type, result["reference"], result["applied"])
    return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "success"})
