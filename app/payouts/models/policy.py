"""
Fee and trust-tier policy models.

FeePolicy holds the gateway fee schedule and platform commission for a
currency (optionally narrowed to a region). TrustTierPolicy holds the
reserve percentage, reserve hold and automatic payout limit for each
trust level. Both are resolved into an immutable PolicySnapshot before
any calculation; see payouts.services.policies.
"""

from __future__ import annotations

from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payouts.state_machines import ReserveBasis, TrustLevel

PERCENT_VALIDATORS = [
    MinValueValidator(Decimal("0")),
    MaxValueValidator(Decimal("100")),
]


class FeePolicy(UUIDPrimaryKeyMixin, BaseModel):
    """
    Fee schedule applied to an event's gross proceeds.

    A blank region is the default for the currency. Only one active
    policy may exist per (currency, region).
    """

    currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 currency code (lowercase)",
    )
    region = models.CharField(
        max_length=32,
        blank=True,
        default="",
        help_text="Region code; blank applies to every region of the currency",
    )
    processor_fee_percent = models.DecimalField(
        max_digits=5,
        decimal_places=3,
        validators=PERCENT_VALIDATORS,
        help_text="Gateway percentage fee, e.g. 2.900",
    )
    processor_fee_fixed_cents = models.PositiveIntegerField(
        default=0,
        help_text="Gateway fixed fee per payout in minor units",
    )
    platform_fee_percent = models.DecimalField(
        max_digits=5,
        decimal_places=3,
        validators=PERCENT_VALIDATORS,
        help_text="Marketplace commission percentage",
    )
    free_mode = models.BooleanField(
        default=False,
        help_text="When enabled the platform fee is waived",
    )
    reserve_basis = models.CharField(
        max_length=32,
        choices=ReserveBasis.choices,
        default=ReserveBasis.NET_OF_PROCESSOR_FEES,
    )
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["currency", "region"]
        verbose_name = "Fee Policy"
        verbose_name_plural = "Fee Policies"
        constraints = [
            models.UniqueConstraint(
                fields=["currency", "region"],
                condition=models.Q(is_active=True),
                name="fee_policy_one_active_per_currency_region",
            ),
        ]

    def __str__(self) -> str:
        region = self.region or "*"
        return f"FeePolicy({self.currency}/{region})"


class TrustTierPolicy(UUIDPrimaryKeyMixin, BaseModel):
    """
    Reserve and review parameters for one trust level.

    auto_payout_limit_cents of NULL means the tier has no automatic
    payout ceiling.
    """

    trust_level = models.CharField(
        max_length=20,
        choices=TrustLevel.choices,
        unique=True,
    )
    reserve_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=PERCENT_VALIDATORS,
    )
    reserve_hold_days = models.PositiveIntegerField(
        help_text="Days after event end before the reserve can be released",
    )
    auto_payout_limit_cents = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Net payouts above this amount require manual review",
    )

    class Meta:
        ordering = ["trust_level"]
        verbose_name = "Trust Tier Policy"
        verbose_name_plural = "Trust Tier Policies"

    def __str__(self) -> str:
        return f"TrustTierPolicy({self.trust_level}, {self.reserve_percent}%)"
