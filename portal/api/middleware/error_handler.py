"""Exception types raised by services and the middleware that renders them.

Every failure leaves the API as the same JSON envelope
(``error``, ``message``, optional ``details`` and ``request_id``,
``timestamp``). Services raise the :class:`APIError` subclass that names
the failure and never build responses themselves.
"""

import logging
import time
from typing import Any, Callable

from fastapi import HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from portal.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base class for failures reported to the client.

    Subclasses set ``status_code`` and ``error_type`` at class level; the
    constructor only carries the message and optional details.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type: str = "api_error"
    default_message: str = "Request failed"

    def __init__(
        self,
        message: str | None = None,
        details: list[dict[str, Any]] | None = None,
        status_code: int | None = None,
        error_type: str | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        if error_type is not None:
            self.error_type = error_type
        super().__init__(self.message)

    def headers(self) -> dict[str, str]:
        """Extra response headers for this failure."""
        return {}


class ValidationError(APIError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_type = "validation_error"
    default_message = "Validation error"


class AuthenticationError(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_type = "authentication_error"
    default_message = "Authentication required"


class AuthorizationError(APIError):
    status_code = status.HTTP_403_FORBIDDEN
    error_type = "authorization_error"
    default_message = "Access denied"


class NotFoundError(APIError):
    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"
    default_message = "Resource not found"


class GoneError(APIError):
    """Resource existed but has expired."""

    status_code = status.HTTP_410_GONE
    error_type = "gone"
    default_message = "Resource has expired"


class RateLimitError(APIError):
    """Caller exhausted a rate-limit bucket.

    Attributes:
        retry_after: Seconds until the bucket admits another attempt.
        limit: Bucket size, echoed as ``X-RateLimit-Limit`` when known.
    """

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_type = "rate_limit_exceeded"
    default_message = "Rate limit exceeded"

    def __init__(
        self,
        message: str | None = None,
        retry_after: int = 60,
        limit: int | None = None,
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.retry_after = retry_after
        self.limit = limit

    def headers(self) -> dict[str, str]:
        headers = {
            "Retry-After": str(self.retry_after),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(int(time.time()) + self.retry_after),
        }
        if self.limit is not None:
            headers["X-RateLimit-Limit"] = str(self.limit)
        return headers


class ConfigurationError(APIError):
    """A required external credential is not configured."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_type = "configuration_error"
    default_message = "Service not configured"


class GatewayError(APIError):
    """The payment provider failed or answered unexpectedly.

    Clients only see the generic message; ``detail`` is for the log.
    """

    status_code = status.HTTP_502_BAD_GATEWAY
    error_type = "gateway_error"
    default_message = "Payment provider error. Please try again later."

    def __init__(self, detail: str = "", message: str | None = None) -> None:
        super().__init__(message)
        self.detail = detail


class ReconciliationError(APIError):
    """A webhook or callback payload could not be applied.

    Attributes:
        retryable: True when the provider should redeliver later, for
            example when the payment row has not been written yet.
    """

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_type = "reconciliation_error"
    default_message = "Payment notification could not be applied"

    def __init__(self, message: str | None = None, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


def create_error_response(
    error_type: str,
    message: str,
    status_code: int,
    details: list[dict[str, Any]] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    """Render the error envelope.

    Args:
        error_type: Machine-readable category.
        message: Client-safe description.
        status_code: HTTP status code.
        details: Optional structured details.
        request_id: Echoed ``X-Request-ID``, if the caller sent one.

    Returns:
        JSONResponse: The envelope with ``None`` fields omitted.
    """
    body = ErrorResponse.from_exception(
        error_type=error_type,
        message=message,
        details=details,
        request_id=request_id,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
    )


def _log_api_error(exc: APIError, request: Request, request_id: str | None) -> None:
    extra = {"request_id": request_id, "path": request.url.path, "status_code": exc.status_code}
    if isinstance(exc, GatewayError):
        logger.error("Payment gateway failure on %s: %s", request.url.path, exc.detail or exc.message, extra=extra)
    elif isinstance(exc, RateLimitError):
        logger.warning("Rate limited on %s, retry in %ss", request.url.path, exc.retry_after, extra=extra)
    else:
        logger.warning("%s on %s: %s", exc.error_type, request.url.path, exc.message, extra=extra)


async def error_handler_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Turn any exception escaping a route into the error envelope.

    Gateway details and stack traces are logged but never returned.
    """
    request_id = request.headers.get("X-Request-ID")

    try:
        return await call_next(request)

    except APIError as e:
        _log_api_error(e, request, request_id)
        # Provider detail stays server-side, so gateway errors drop details too
        details = None if isinstance(e, GatewayError) else e.details
        response = create_error_response(e.error_type, e.message, e.status_code, details, request_id)
        response.headers.update(e.headers())
        return response

    except HTTPException as e:
        logger.warning("HTTP %s on %s: %s", e.status_code, request.url.path, e.detail, extra={"request_id": request_id})
        return create_error_response("http_error", str(e.detail), e.status_code, request_id=request_id)

    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path, extra={"request_id": request_id})
        return create_error_response(
            "internal_error",
            "An unexpected error occurred",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            request_id=request_id,
        )
