"""
Reserve ledger - append-only record of every reserve movement.

Public API:
    Models:
        ReserveLedgerEntry - One immutable reserve movement

    Service:
        ReserveLedgerService - All reserve ledger reads and writes

    Types:
        Money - Monetary amount in cents
        ReserveBalance - Withheld / released / forfeited / remaining totals

Usage:
    from payouts.ledger import ReserveLedgerService

    remaining = ReserveLedgerService.remaining_reserve(payout)
"""

from .models import ReserveLedgerEntry
from .services import ReserveLedgerService
from .types import Money, ReserveBalance

__all__ = [
    "ReserveLedgerEntry",
    "ReserveLedgerService",
    "Money",
    "ReserveBalance",
]
