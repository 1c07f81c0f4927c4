"""
Fee and reserve calculator.

Pure functions over a PolicySnapshot. No database access, no clock.

Rounding:
    processor fee  round half up, then + fixed fee
    platform fee   floor
    reserve        floor
    net payout     remainder, so the four parts always add up to gross

Example:
    >>> split = calculate_payout_split(100_000, usd_new_tier)
    >>> split.processor_fees_cents, split.platform_fee_cents
    (2930, 5000)
    >>> split.reserve_amount_cents, split.net_payout_cents
    (9707, 82363)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

from payouts.exceptions import InvalidAmountError
from payouts.state_machines import ReserveBasis

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class PolicySnapshot:
    """
    Fee schedule and trust-tier parameters in effect for one payout.

    Percentages are expressed in percent (Decimal("2.9") is 2.9%).
    Built by payouts.services.policies.PolicyResolver.
    """

    currency: str
    processor_fee_percent: Decimal
    processor_fee_fixed_cents: int
    platform_fee_percent: Decimal
    free_mode: bool
    reserve_basis: str
    reserve_percent: Decimal
    reserve_hold_days: int
    auto_payout_limit_cents: int | None = None


@dataclass(frozen=True)
class PayoutSplit:
    """Gross proceeds broken down into what each party receives."""

    gross_amount_cents: int
    processor_fees_cents: int
    platform_fee_cents: int
    reserve_amount_cents: int
    net_payout_cents: int

    @property
    def is_balanced(self) -> bool:
        return self.gross_amount_cents == (
            self.processor_fees_cents
            + self.platform_fee_cents
            + self.reserve_amount_cents
            + self.net_payout_cents
        )

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def _percent_of(amount_cents: int, percent: Decimal, rounding: str) -> int:
    value = Decimal(amount_cents) * Decimal(percent) / HUNDRED
    return int(value.quantize(Decimal("1"), rounding=rounding))


def calculate_payout_split(gross_amount_cents: int, policy: PolicySnapshot) -> PayoutSplit:
    """
    Split gross proceeds into processor fees, platform fee, reserve and net.

    Args:
        gross_amount_cents: Total raised, in minor units
        policy: Resolved fee and trust-tier parameters

    Raises:
        InvalidAmountError: If gross is not a positive integer
    """
    if (
        isinstance(gross_amount_cents, bool)
        or not isinstance(gross_amount_cents, int)
        or gross_amount_cents <= 0
    ):
        raise InvalidAmountError(
            "Gross amount must be a positive whole number of cents",
            details={"gross_amount_cents": repr(gross_amount_cents)},
        )

    gross = gross_amount_cents

    processor = (
        _percent_of(gross, policy.processor_fee_percent, ROUND_HALF_UP)
        + policy.processor_fee_fixed_cents
    )
    processor = min(max(processor, 0), gross)

    if policy.free_mode:
        platform = 0
    else:
        platform = _percent_of(gross, policy.platform_fee_percent, ROUND_FLOOR)
    platform = min(max(platform, 0), gross - processor)

    if policy.reserve_basis == ReserveBasis.NET_OF_ALL_FEES:
        reserve_base = gross - processor - platform
    else:
        reserve_base = gross - processor
    reserve = _percent_of(max(reserve_base, 0), policy.reserve_percent, ROUND_FLOOR)
    reserve = min(max(reserve, 0), gross - processor - platform)

    net = gross - processor - platform - reserve

    return PayoutSplit(
        gross_amount_cents=gross,
        processor_fees_cents=processor,
        platform_fee_cents=platform,
        reserve_amount_cents=reserve,
        net_payout_cents=net,
    )
