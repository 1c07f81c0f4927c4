"""
Organization trust profile, as seen by the payout engine.

The organization trust service owns these rows. The engine reads them to
pick a reserve tier, gate payouts on risk and find the transfer
destination; it never writes them.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payouts.state_machines import TrustLevel


class OrganizationTrustProfile(UUIDPrimaryKeyMixin, BaseModel):
    """
    Read-only trust snapshot of a seller organization.

    Fields:
        organization_id: Id of the organization in the organization service
        name: Display name used in admin context and notifications
        contact_email: Where payout notifications are sent
        trust_level: Tier driving reserve percentage, hold and auto limit
        successful_events_count: Events paid out without incident
        chargeback_count: Lost disputes counted by the trust service
        stripe_account_id: Connected account receiving transfers
        payouts_enabled: Whether the connected account can receive transfers
        tax_info_verified: Whether the organization's W-9 has been verified
    """

    organization_id = models.UUIDField(
        unique=True,
        db_index=True,
        help_text="Organization identifier owned by the organization service",
    )
    name = models.CharField(max_length=255, blank=True, default="")
    contact_email = models.EmailField(
        blank=True,
        default="",
        help_text="Recipient for payout notifications",
    )
    trust_level = models.CharField(
        max_length=20,
        choices=TrustLevel.choices,
        default=TrustLevel.NEW,
        db_index=True,
    )
    successful_events_count = models.PositiveIntegerField(default=0)
    chargeback_count = models.PositiveIntegerField(default=0)
    stripe_account_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe connected account ID (acct_xxx)",
    )
    payouts_enabled = models.BooleanField(
        default=False,
        help_text="Whether Stripe reports the account can receive transfers",
    )
    tax_info_verified = models.BooleanField(
        default=False,
        help_text="Whether the organization's tax information (W-9) is verified",
    )

    class Meta:
        ordering = ["name"]
        verbose_name = "Organization Trust Profile"
        verbose_name_plural = "Organization Trust Profiles"

    def __str__(self) -> str:
        return f"OrganizationTrustProfile({self.organization_id}, {self.trust_level})"

    @property
    def can_receive_transfers(self) -> bool:
        return bool(self.stripe_account_id) and self.payouts_enabled
