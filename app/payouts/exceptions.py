"""
Payout-specific exceptions.

Exception Hierarchy:
    PayoutError (base for the payout domain)
    ├── PayoutValidationError - Malformed input (ValidationError, HTTP 400)
    │   └── InvalidAmountError - Non-positive or non-integer gross amount
    ├── PolicyMissingError - No fee/tier policy resolves for the payout
    ├── PayoutNotFoundError - Payout lookup failures (NotFoundError, HTTP 404)
    ├── ChargebackNotFoundError - Chargeback lookup failures (HTTP 404)
    ├── IllegalTransitionError - Transition outside the legal table (HTTP 409)
    ├── InvalidStateError - Admin action not allowed in current state (HTTP 409)
    ├── ConcurrencyConflictError - Compare-and-set claim lost (HTTP 409)
    ├── ReserveOverdrawnError - Ledger write would exceed the reserve (HTTP 409)
    └── GatewayError - Payment gateway failures (ExternalServiceError, HTTP 502)
        └── StripeError - Base for all Stripe errors
            ├── StripeInvalidAccountError - Destination account unusable (permanent)
            ├── StripeInvalidRequestError - Invalid request params (permanent)
            ├── StripeRateLimitError - Rate limited (transient)
            ├── StripeAPIUnavailableError - API unavailable (transient)
            └── StripeTimeoutError - Request timeout, outcome unknown (transient)

Usage:
    from payouts.exceptions import IllegalTransitionError, StripeError

    try:
        StripeAdapter.create_transfer(...)
    except StripeError as e:
        payout.fail(reason=e.message, error_code=e.error_code, retryable=e.is_retryable)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payout Domain Exceptions
# =============================================================================


class PayoutError(BaseApplicationError):
    """Base exception for all payout engine operations."""

    default_error_code: str = "PAYOUT_ERROR"


class PayoutValidationError(PayoutError, ValidationError):
    """
    Raised when payout input is malformed.

    Raised before any state change, e.g. creating a payout for an
    event that has not ended yet.
    """

    default_error_code: str = "PAYOUT_VALIDATION_ERROR"


class InvalidAmountError(PayoutValidationError):
    """
    Raised when a gross amount is zero, negative or not whole minor units.

    Example:
        raise InvalidAmountError(
            "Gross amount must be positive",
            details={"gross_amount_cents": 0},
        )
    """

    default_error_code: str = "INVALID_AMOUNT"


class PolicyMissingError(PayoutError):
    """
    Raised when no fee or trust-tier policy applies.

    Payout creation is aborted and must be retried once a policy exists
    for the event's currency/region and the organization's trust level.
    """

    default_error_code: str = "POLICY_MISSING"


class PayoutNotFoundError(PayoutError, NotFoundError):
    """Raised when a payout cannot be found."""

    default_error_code: str = "PAYOUT_NOT_FOUND"


class ChargebackNotFoundError(PayoutError, NotFoundError):
    """Raised when a chargeback cannot be found."""

    default_error_code: str = "CHARGEBACK_NOT_FOUND"


# =============================================================================
# State & Concurrency Exceptions
# =============================================================================


class IllegalTransitionError(PayoutError, ConflictError):
    """
    Raised when a state machine transition is not in the legal table.

    Wraps django-fsm's TransitionNotAllowed. The model state is left
    untouched when this is raised.

    Attributes:
        details: Contains current_state, transition and model id
    """

    default_error_code: str = "ILLEGAL_TRANSITION"


class InvalidStateError(PayoutError, ConflictError):
    """
    Raised when an admin action is not allowed in the current state.

    Example:
        Rejecting a completed payout, approving a payout that is not held,
        or changing the outcome of a lost chargeback.
    """

    default_error_code: str = "INVALID_STATE"


class ConcurrencyConflictError(PayoutError, ConflictError):
    """
    Raised when a compare-and-set claim matches no row.

    Another worker already moved the record out of the expected state.
    Batch runs count it as skipped; it is never reported as an error.
    """

    default_error_code: str = "CONCURRENCY_CONFLICT"


class ReserveOverdrawnError(PayoutError, ConflictError):
    """
    Raised when a reserve ledger write would release or forfeit more
    than the payout's original reserve amount.
    """

    default_error_code: str = "RESERVE_OVERDRAWN"


# =============================================================================
# Gateway Exceptions
# =============================================================================


class GatewayError(PayoutError, ExternalServiceError):
    """
    Base exception for payment gateway failures.

    Recorded per record by the batch jobs; never propagates across
    records in the same run.
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False


class StripeError(GatewayError):
    """
    Base exception for all Stripe-related errors.

    Attributes:
        stripe_code: Stripe's internal error code
        is_retryable: Whether the same request may succeed later
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code


# -----------------------------------------------------------------------------
# Permanent Errors (need manual intervention)
# -----------------------------------------------------------------------------


class StripeInvalidAccountError(StripeError):
    """
    The destination connected account cannot receive transfers.

    The account is missing, restricted or not onboarded. Retrying the
    same transfer will keep failing until the organization fixes it.
    """

    default_error_code: str = "INVALID_STRIPE_ACCOUNT"
    is_retryable: bool = False


class StripeInvalidRequestError(StripeError):
    """
    Invalid request parameters sent to Stripe.

    Usually a bug on our side (bad amount, reused idempotency key with
    different parameters) or a bad webhook signature.
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (retried on the next scheduled run)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Rate limited by the Stripe API."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """
    Stripe API is temporarily unavailable.

    Covers network failures and Stripe 5xx responses.
    """

    default_error_code: str = "STRIPE_API_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """
    Stripe request timed out.

    The transfer may or may not have been created. The payout is marked
    failed, never completed, and the retry reuses the same idempotency
    key so the gateway returns the original transfer if it exists.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True


__all__ = [
    "PayoutError",
    "PayoutValidationError",
    "InvalidAmountError",
    "PolicyMissingError",
    "PayoutNotFoundError",
    "ChargebackNotFoundError",
    "IllegalTransitionError",
    "InvalidStateError",
    "ConcurrencyConflictError",
    "ReserveOverdrawnError",
    "GatewayError",
    "StripeError",
    "StripeInvalidAccountError",
    "StripeInvalidRequestError",
    "StripeRateLimitError",
    "StripeAPIUnavailableError",
    "StripeTimeoutError",
]
