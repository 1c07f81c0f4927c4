"""
State machine enums and helpers for payout engine models.
"""

from payouts.state_machines.states import (
    FORFEIT_ENTRY_TYPES,
    PAYOUT_TRANSITIONS,
    TERMINAL_PAYOUT_STATES,
    ChargebackStatus,
    PayoutState,
    ReserveBasis,
    ReserveEntryType,
    ResolutionSource,
    RiskFlag,
    TrustLevel,
    WebhookEventStatus,
    is_legal_transition,
)

__all__ = [
    "FORFEIT_ENTRY_TYPES",
    "PAYOUT_TRANSITIONS",
    "TERMINAL_PAYOUT_STATES",
    "ChargebackStatus",
    "PayoutState",
    "ReserveBasis",
    "ReserveEntryType",
    "ResolutionSource",
    "RiskFlag",
    "TrustLevel",
    "WebhookEventStatus",
    "is_legal_transition",
]
