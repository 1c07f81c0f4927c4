"""
State enums for payout engine models.

These are Django TextChoices used by the django-fsm fields and the
admin filters.

State Machines Overview:

Payout States:
    pending → eligible → processing → completed
    pending/eligible → held (risk review)
    held → eligible (admin approve)
    held/eligible → rejected (admin reject)
    processing → failed → eligible (automatic retry) or held (retry limit)

Chargeback States:
    open → won | lost | closed

Webhook Event States:
    pending → processing → processed | failed
"""

from django.db import models


class PayoutState(models.TextChoices):
    """
    States for the Payout lifecycle.

    Terminal states: COMPLETED, REJECTED. The reserve lifecycle of a
    completed payout continues independently in the reserve ledger.
    """

    PENDING = "pending", "Pending"
    ELIGIBLE = "eligible", "Eligible"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    HELD = "held", "Held for Review"
    FAILED = "failed", "Failed"
    REJECTED = "rejected", "Rejected"


# Every legal (source, target) pair. The FSM decorators on Payout and the
# compare-and-set claim are both checked against this table in tests.
PAYOUT_TRANSITIONS: frozenset[tuple[str, str]] = frozenset(
    {
        (PayoutState.PENDING.value, PayoutState.ELIGIBLE.value),
        (PayoutState.PENDING.value, PayoutState.HELD.value),
        (PayoutState.ELIGIBLE.value, PayoutState.HELD.value),
        (PayoutState.ELIGIBLE.value, PayoutState.PROCESSING.value),
        (PayoutState.ELIGIBLE.value, PayoutState.REJECTED.value),
        (PayoutState.HELD.value, PayoutState.ELIGIBLE.value),
        (PayoutState.HELD.value, PayoutState.REJECTED.value),
        (PayoutState.PROCESSING.value, PayoutState.COMPLETED.value),
        (PayoutState.PROCESSING.value, PayoutState.FAILED.value),
        (PayoutState.FAILED.value, PayoutState.ELIGIBLE.value),
        (PayoutState.FAILED.value, PayoutState.HELD.value),
    }
)

TERMINAL_PAYOUT_STATES: frozenset[str] = frozenset(
    {PayoutState.COMPLETED.value, PayoutState.REJECTED.value}
)


def is_legal_transition(source: str, target: str) -> bool:
    """Return True if source -> target is in the payout transition table."""
    return (str(source), str(target)) in PAYOUT_TRANSITIONS


class ChargebackStatus(models.TextChoices):
    """
    States for a gateway dispute.

    LOST is irrevocable and triggers a reserve deduction attempt.
    """

    OPEN = "open", "Open"
    WON = "won", "Won"
    LOST = "lost", "Lost"
    CLOSED = "closed", "Closed"


class ResolutionSource(models.TextChoices):
    """Who resolved a chargeback."""

    GATEWAY = "gateway", "Gateway Callback"
    ADMIN = "admin", "Admin Action"


class ReserveEntryType(models.TextChoices):
    """Movement types recorded in the reserve ledger."""

    WITHHELD = "withheld", "Withheld"
    RELEASED = "released", "Released"
    FORFEITED_PARTIAL = "forfeited_partial", "Forfeited (Partial)"
    FORFEITED_FULL = "forfeited_full", "Forfeited (Full)"


FORFEIT_ENTRY_TYPES: frozenset[str] = frozenset(
    {ReserveEntryType.FORFEITED_PARTIAL.value, ReserveEntryType.FORFEITED_FULL.value}
)


class TrustLevel(models.TextChoices):
    """
    Organization trust tiers.

    Higher tiers get a lower reserve, a shorter hold and a higher
    automatic payout limit.
    """

    NEW = "new", "New"
    ESTABLISHED = "established", "Established"
    TRUSTED = "trusted", "Trusted"
    VERIFIED_NONPROFIT = "verified_np", "Verified Nonprofit"
    FLAGGED = "flagged", "Flagged"


class ReserveBasis(models.TextChoices):
    """Which amount the reserve percentage is applied to."""

    NET_OF_PROCESSOR_FEES = "net_of_processor_fees", "Gross minus processor fees"
    NET_OF_ALL_FEES = "net_of_all_fees", "Gross minus processor and platform fees"


class RiskFlag(models.TextChoices):
    """Tags appended to Payout.flags when a payout is diverted to review."""

    OPEN_CHARGEBACK = "open_chargeback", "Open chargeback"
    CHARGEBACK_HISTORY = "chargeback_history", "Chargeback history"
    EXCEEDS_AUTO_LIMIT = "exceeds_auto_limit", "Exceeds automatic payout limit"
    FLAGGED_ORGANIZATION = "flagged_organization", "Organization flagged"
    TRANSFER_RETRY_LIMIT = "transfer_retry_limit", "Transfer retry limit reached"
    TRANSFER_REJECTED = "transfer_rejected", "Transfer rejected by gateway"
    PAYOUT_ACCOUNT_NOT_READY = "payout_account_not_ready", "Payout account not ready"
    FIRST_EVENT = "first_event", "First event"
    HIGH_VALUE = "high_value", "High value event"
    W9_REQUIRED = "w9_required", "Tax information (W-9) required"


class WebhookEventStatus(models.TextChoices):
    """Processing status for stored Stripe webhook events."""

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"
