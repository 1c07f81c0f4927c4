"""
Policy resolution.

Turns the active FeePolicy for a currency/region and the TrustTierPolicy
for a trust level into one immutable PolicySnapshot. Calculations only
ever see the snapshot, never the policy rows.
"""

from __future__ import annotations

from core.services import BaseService
from payouts.exceptions import PolicyMissingError
from payouts.models import FeePolicy, TrustTierPolicy
from payouts.state_machines import ReserveBasis

from .fee_calculator import PolicySnapshot


class PolicyResolver(BaseService):
    """Reads the policy tables and builds PolicySnapshots."""

    @classmethod
    def resolve(
        cls,
        currency: str,
        region: str = "",
        trust_level: str = "new",
    ) -> PolicySnapshot:
        """
        Build the snapshot for a currency/region and trust level.

        Falls back from the region-specific fee policy to the currency
        default (blank region).

        Raises:
            PolicyMissingError: If no fee policy or no tier policy applies
        """
        fee_policy = cls.resolve_fee_policy(currency, region)
        tier_policy = cls.resolve_tier_policy(trust_level)

        return PolicySnapshot(
            currency=fee_policy.currency,
            processor_fee_percent=fee_policy.processor_fee_percent,
            processor_fee_fixed_cents=fee_policy.processor_fee_fixed_cents,
            platform_fee_percent=fee_policy.platform_fee_percent,
            free_mode=fee_policy.free_mode,
            reserve_basis=fee_policy.reserve_basis or ReserveBasis.NET_OF_PROCESSOR_FEES,
            reserve_percent=tier_policy.reserve_percent,
            reserve_hold_days=tier_policy.reserve_hold_days,
            auto_payout_limit_cents=tier_policy.auto_payout_limit_cents,
        )

    @classmethod
    def resolve_fee_policy(cls, currency: str, region: str = "") -> FeePolicy:
        currency = (currency or "").lower()
        active = FeePolicy.objects.filter(currency=currency, is_active=True)

        if region:
            policy = active.filter(region=region).first()
            if policy is not None:
                return policy

        policy = active.filter(region="").first()
        if policy is None:
            cls.get_logger().error(
                "No fee policy for currency",
                extra={"currency": currency, "region": region},
            )
            raise PolicyMissingError(
                f"No active fee policy for {currency!r}",
                details={"currency": currency, "region": region},
            )
        return policy

    @classmethod
    def resolve_tier_policy(cls, trust_level: str) -> TrustTierPolicy:
        try:
            return TrustTierPolicy.objects.get(trust_level=trust_level)
        except TrustTierPolicy.DoesNotExist:
            cls.get_logger().error(
                "No trust tier policy",
                extra={"trust_level": trust_level},
            )
            raise PolicyMissingError(
                f"No trust tier policy for {trust_level!r}",
                details={"trust_level": trust_level},
            )

    @classmethod
    def auto_payout_limit(cls, trust_level: str) -> int | None:
        """Tier limit used by the gate; None when the tier has no policy or no limit."""
        policy = TrustTierPolicy.objects.filter(trust_level=trust_level).first()
        return policy.auto_payout_limit_cents if policy else None
