"""
Payout engine models.

- Payout: What one organization is owed for one auction event
- Chargeback: Payment disputes raised through the gateway
- OrganizationTrustProfile: Trust tier and payout account of an organization
- FeePolicy / TrustTierPolicy: Fee schedule and per-tier reserve rules
- WebhookEvent: Stripe webhook event tracking for idempotent processing
- ReserveLedgerEntry: Append-only reserve movements (payouts.ledger)
"""

from payouts.models.chargeback import Chargeback
from payouts.models.organization import OrganizationTrustProfile
from payouts.models.payout import Payout
from payouts.models.policy import FeePolicy, TrustTierPolicy
from payouts.models.webhook_event import WebhookEvent
from payouts.ledger.models import ReserveLedgerEntry

__all__ = [
    "Chargeback",
    "FeePolicy",
    "OrganizationTrustProfile",
    "Payout",
    "ReserveLedgerEntry",
    "TrustTierPolicy",
    "WebhookEvent",
]
