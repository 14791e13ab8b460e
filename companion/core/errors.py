"""Application-level exception types.

Services raise these domain errors; ``exception_handlers`` turns them into
HTTP responses with a stable JSON shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for clients and logs.
    """

    code: str
    message: str
    details: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input validation or a business precondition fails."""


class AuthenticationAppError(AppError):
    """Raised when the caller is not authenticated."""


class PermissionAppError(AppError):
    """Raised when the caller is authenticated but not allowed to act."""


class PlanLimitAppError(PermissionAppError):
    """Raised when the caller's plan does not allow the operation."""

    def __init__(self, *, resource: str, limit: int, current: int) -> None:
        super().__init__(
            code="freemium_limit_reached",
            message=(
                f"The free plan is limited to {limit} {resource}. "
                "Upgrade to the Standard plan to continue."
            ),
            details={
                "resource": resource,
                "limit": limit,
                "current": current,
                "upgrade_url": "/pricing",
            },
        )


class NotFoundAppError(AppError):
    """Raised when a resource does not exist or is not visible to the caller."""


class ConflictAppError(AppError):
    """Raised when a resource already exists."""


class PaymentProviderAppError(AppError):
    """Raised when a payment provider call fails."""


class PaymentResourceMissingError(PaymentProviderAppError):
    """Raised when the payment provider no longer knows the requested object."""


class LLMAppError(AppError):
    """Raised when LLM provider/client operations fail."""


class ServiceUnavailableAppError(AppError):
    """Raised when an optional integration is not configured."""
