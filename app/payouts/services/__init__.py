"""
Payout engine services.

- fee_calculator: Pure fee/reserve split (PolicySnapshot -> PayoutSplit)
- policies: PolicyResolver, fee and trust-tier policy lookup
- eligibility: EligibilityGate rules and the gate sweep
- review: Admin approve/reject of held payouts
- chargebacks: Dispute recording and resolution
- payout_creation: Payout creation for ended events
"""

from payouts.services.chargebacks import ChargebackService
from payouts.services.eligibility import (
    EligibilityGate,
    EligibilityService,
    GateDecision,
    RiskContext,
)
from payouts.services.fee_calculator import (
    PayoutSplit,
    PolicySnapshot,
    calculate_payout_split,
)
from payouts.services.payout_creation import EventSnapshot, PayoutCreationService
from payouts.services.policies import PolicyResolver
from payouts.services.review import ReviewService

__all__ = [
    "ChargebackService",
    "EligibilityGate",
    "EligibilityService",
    "EventSnapshot",
    "GateDecision",
    "PayoutCreationService",
    "PayoutSplit",
    "PolicyResolver",
    "PolicySnapshot",
    "ReviewService",
    "RiskContext",
    "calculate_payout_split",
]
