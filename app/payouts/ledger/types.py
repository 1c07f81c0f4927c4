"""
Data types for reserve ledger operations.

Types:
    Money: A monetary amount in minor units with currency
    ReserveBalance: Totals of a payout's reserve ledger
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Money:
    """
    Represents a monetary amount.

    All amounts are stored in cents (smallest currency unit) to avoid
    floating-point precision issues.

    Example:
        amount = Money(cents=9707, currency="usd")
        print(amount)  # "$97.07 USD"
    """

    cents: int
    currency: str = "usd"

    def __str__(self) -> str:
        dollars = self.cents / 100
        return f"${dollars:.2f} {self.currency.upper()}"

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot add Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )
        return Money(cents=self.cents + other.cents, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot subtract Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )
        return Money(cents=self.cents - other.cents, currency=self.currency)


@dataclass(frozen=True)
class ReserveBalance:
    """
    Reserve position of one payout, derived from its ledger entries.

    Attributes:
        reserve_cents: Original reserve_amount_cents on the payout
        withheld_cents: Sum of withheld entries
        released_cents: Sum of released entries
        forfeited_cents: Sum of forfeited_partial + forfeited_full entries
    """

    reserve_cents: int
    withheld_cents: int
    released_cents: int
    forfeited_cents: int
    currency: str = "usd"

    @property
    def disposed_cents(self) -> int:
        return self.released_cents + self.forfeited_cents

    @property
    def remaining_cents(self) -> int:
        return max(self.reserve_cents - self.disposed_cents, 0)

    @property
    def remaining(self) -> Money:
        return Money(cents=self.remaining_cents, currency=self.currency)

    @property
    def is_settled(self) -> bool:
        return self.remaining_cents == 0

    def to_dict(self) -> dict[str, int]:
        return {
            "reserve_cents": self.reserve_cents,
            "withheld_cents": self.withheld_cents,
            "released_cents": self.released_cents,
            "forfeited_cents": self.forfeited_cents,
            "remaining_cents": self.remaining_cents,
        }
