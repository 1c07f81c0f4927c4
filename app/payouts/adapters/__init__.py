"""
Payment gateway adapters.

All payment gateway calls made by the payout engine go through these
adapters to share error handling, timeouts, idempotency and logging.
"""

from payouts.adapters.stripe_adapter import (
    IdempotencyKeyGenerator,
    PaymentIntentResult,
    StripeAdapter,
    TransferResult,
)

__all__ = [
    "IdempotencyKeyGenerator",
    "PaymentIntentResult",
    "StripeAdapter",
    "TransferResult",
]
