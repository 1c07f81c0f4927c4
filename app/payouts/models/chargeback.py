"""
Chargeback model: a payment dispute raised through the gateway.

Chargebacks are recorded when Stripe reports a dispute and resolved by
the dispute-closed callback or by an admin. A lost chargeback is
recovered from the organization's reserves through the reserve ledger;
the chargeback itself only tracks how much was recovered and the
remaining shortfall.
"""

from __future__ import annotations

from datetime import datetime

from django.db import models

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payouts.state_machines import ChargebackStatus, ResolutionSource


class ChargebackQuerySet(models.QuerySet):
    def open(self) -> ChargebackQuerySet:
        return self.filter(status=ChargebackStatus.OPEN)

    def lost(self) -> ChargebackQuerySet:
        return self.filter(status=ChargebackStatus.LOST)

    def affecting_event(self, organization_id, event_id) -> ChargebackQuerySet:
        """
        Chargebacks of an organization that bear on one event's reserve:
        those tied to the event and those not tied to any event.
        """
        return self.filter(organization_id=organization_id).filter(
            models.Q(event_id=event_id) | models.Q(event_id__isnull=True)
        )

    def pending_deduction(self) -> ChargebackQuerySet:
        return self.lost().filter(deducted_from_reserve=False)


class Chargeback(UUIDPrimaryKeyMixin, BaseModel):
    """
    Dispute against an organization, optionally tied to one event.

    State Flow:
        OPEN -> WON | LOST | CLOSED

    Fields:
        gateway_dispute_id: Stripe Dispute ID (dp_xxx), unique
        amount_cents: Disputed amount in minor units
        deducted_from_reserve: Set once the engine has applied the loss
            against a reserve
        recovered_cents: Total forfeited from reserves for this chargeback
        shortfall_cents: amount_cents - recovered_cents once deducted
    """

    organization_id = models.UUIDField(db_index=True)
    event_id = models.UUIDField(null=True, blank=True, db_index=True)
    amount_cents = models.PositiveBigIntegerField()
    currency = models.CharField(max_length=3, default="usd")
    reason = models.CharField(max_length=255, blank=True, default="")

    status = FSMField(
        default=ChargebackStatus.OPEN,
        choices=ChargebackStatus.choices,
        db_index=True,
        protected=True,
    )

    gateway_dispute_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Dispute ID (dp_xxx)",
    )
    gateway_payment_intent_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe PaymentIntent ID the dispute was raised against",
    )

    deducted_from_reserve = models.BooleanField(default=False, db_index=True)
    recovered_cents = models.PositiveBigIntegerField(default=0)
    shortfall_cents = models.PositiveBigIntegerField(default=0)

    resolved_at = models.DateTimeField(null=True, blank=True)
    resolution_source = models.CharField(
        max_length=10,
        choices=ResolutionSource.choices,
        blank=True,
        default="",
    )

    objects = ChargebackQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Chargeback"
        verbose_name_plural = "Chargebacks"
        indexes = [
            models.Index(
                fields=["organization_id", "status"], name="payouts_cha_organiz_1e6b0d_idx"
            ),
            models.Index(
                fields=["status", "deducted_from_reserve"],
                name="payouts_cha_status_7f2a93_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Chargeback({self.gateway_dispute_id}, {self.status})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=ChargebackStatus.OPEN, target=ChargebackStatus.WON)
    def win(self, now: datetime, source: str = ResolutionSource.GATEWAY):
        self._stamp_resolution(now, source)

    @transition(field=status, source=ChargebackStatus.OPEN, target=ChargebackStatus.LOST)
    def lose(self, now: datetime, source: str = ResolutionSource.GATEWAY):
        self._stamp_resolution(now, source)

    @transition(
        field=status, source=ChargebackStatus.OPEN, target=ChargebackStatus.CLOSED
    )
    def close(self, now: datetime, source: str = ResolutionSource.GATEWAY):
        self._stamp_resolution(now, source)

    def _stamp_resolution(self, now: datetime, source: str) -> None:
        self.resolved_at = now
        self.resolution_source = source

    @property
    def outstanding_cents(self) -> int:
        """Amount not yet recovered from any reserve."""
        return max(self.amount_cents - self.recovered_cents, 0)
