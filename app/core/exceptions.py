"""
Base exception classes for application-wide error handling.

Every domain error raised by the services carries a human-readable message,
a machine-readable error code and an optional details dict. The DRF
exception handler in core.exception_handler turns them into JSON responses.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Malformed input, rejected before any state change
    ├── NotFoundError - Resource not found
    ├── ConflictError - State conflicts (illegal transitions, lost races)
    └── ExternalServiceError - Third-party service failures (payment gateway)

Usage:
    from core.exceptions import ValidationError, NotFoundError

    raise ValidationError("Amount must be positive", error_code="INVALID_AMOUNT")

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=400)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (ids, amounts, states)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Payout not found",
                "error_code": "PAYOUT_NOT_FOUND",
                "details": {"payout_id": "..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails in the service layer.

    For request payloads, DRF serializer validation runs first; this is
    for rules the services enforce themselves (non-positive amounts,
    events that have not ended).
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """Raised when a requested resource is not found."""

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Invalid state transitions
    - Compare-and-set claims lost to another worker
    - Ledger writes that would break a balance invariant

    HTTP 409 Conflict is the appropriate status for these errors.
    """

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Log the original error for debugging but don't expose
    internal details to clients. HTTP 502 is the appropriate status.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
