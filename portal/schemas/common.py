"""Schemas shared by every router: probes, errors and request bases."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Request body base that accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(BaseModel):
    """Plain acknowledgement carrying a human-readable message."""

    message: str


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """Liveness probe body."""

    status: HealthStatus
    timestamp: datetime = Field(default_factory=_utcnow)
    version: str = "0.1.0"


class CheckResult(BaseModel):
    """Outcome of probing one backing service."""

    name: str
    healthy: bool
    latency_ms: float | None = None
    error: str | None = None


class ReadinessResponse(BaseModel):
    """Readiness probe body; ``status`` is unhealthy if any check failed."""

    status: HealthStatus
    timestamp: datetime = Field(default_factory=_utcnow)
    checks: list[CheckResult] = Field(default_factory=list)


class ErrorDetail(BaseModel):
    """One entry of an error's ``details`` list, e.g. a field problem."""

    loc: list[str] | None = None
    msg: str
    type: str = "error"


class ErrorResponse(BaseModel):
    """Envelope returned for every failed request.

    Attributes:
        error: Machine-readable category such as ``not_found``.
        message: Client-safe description.
        details: Optional structured details.
        request_id: The caller's ``X-Request-ID``, echoed back.
        timestamp: When the error was produced (UTC).
    """

    error: str
    message: str
    details: list[ErrorDetail] | None = None
    request_id: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_exception(
        cls,
        error_type: str,
        message: str,
        details: list[dict[str, Any]] | None = None,
        request_id: str | None = None,
    ) -> "ErrorResponse":
        """Build the envelope from an exception's fields.

        Detail dicts missing ``msg`` are stringified whole.
        """
        return cls(
            error=error_type,
            message=message,
            details=[
                ErrorDetail(loc=d.get("loc"), msg=d.get("msg", str(d)), type=d.get("type", "error"))
                for d in details
            ] if details else None,
            request_id=request_id,
        )
