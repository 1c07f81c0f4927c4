"""
Payout model: what one organization is owed for one auction event.

A Payout is created once, when the event ends, with its full split
(processor fees, platform fee, reserve, net payout). The split is never
edited afterwards; reserve movements are recorded in the reserve ledger.

Usage:
    from payouts.models import Payout
    from payouts.state_machines.guards import legal_transition

    # Exclusive claim for the batch processor (compare-and-set)
    if Payout.objects.claim(payout.id, now=now):
        ...

    # Named FSM transitions for everything else
    with legal_transition(payout, "complete"):
        payout.complete(transfer_reference="tr_123", now=now)
    payout.save()
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from django.db import models
from django.db.models import F, Q

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payouts.exceptions import PayoutError
from payouts.state_machines import PayoutState, TrustLevel

if TYPE_CHECKING:
    from collections.abc import Iterable


class PayoutQuerySet(models.QuerySet):
    """Queries and the compare-and-set claim used by the batch jobs."""

    def for_organization(self, organization_id) -> PayoutQuerySet:
        return self.filter(organization_id=organization_id)

    def needing_review(self) -> PayoutQuerySet:
        return self.filter(status=PayoutState.HELD)

    def reserve_release_due(self, now: datetime) -> PayoutQuerySet:
        """Completed payouts whose reserve hold has elapsed and is not settled."""
        return self.filter(
            status=PayoutState.COMPLETED,
            reserve_amount_cents__gt=0,
            reserve_settled_at__isnull=True,
            reserve_release_at__lte=now,
        )

    def claim(self, payout_id, now: datetime) -> bool:
        """
        Atomically move one payout from eligible to processing.

        Issues a single conditional UPDATE that only matches while the
        stored status is still eligible. Returns False when another
        worker got there first.
        """
        updated = self.filter(pk=payout_id, status=PayoutState.ELIGIBLE).update(
            status=PayoutState.PROCESSING,
            processed_at=now,
            updated_at=now,
            version=F("version") + 1,
        )
        return updated == 1


class Payout(UUIDPrimaryKeyMixin, BaseModel):
    """
    Disbursement of one event's proceeds to one organization.

    State Flow:
        PENDING -> ELIGIBLE -> PROCESSING -> COMPLETED
        PENDING/ELIGIBLE -> HELD (risk review)
        HELD -> ELIGIBLE (approve) | REJECTED (reject)
        ELIGIBLE -> REJECTED (reject)
        PROCESSING -> FAILED -> ELIGIBLE (retry) | HELD (retry limit)

    Fields:
        event_id / organization_id: The (event, organization) pair, unique
        *_cents: Original split; gross == processor + platform + reserve + net
        status: FSM state (protected, change only through transitions)
        flags: Risk flag tags that diverted the payout to review
        transfer_reference: Gateway transfer id, set only on success
        failed_attempts: Consecutive gateway failures
        reserve_release_at: event_ended_at + reserve_hold_days
        reserve_settled_at: Set once the ledger shows the reserve disposed
        version: Incremented on every save
    """

    # ==========================================================================
    # Event & Organization
    # ==========================================================================

    event_id = models.UUIDField(db_index=True)
    organization_id = models.UUIDField(db_index=True)
    event_name = models.CharField(max_length=255, blank=True, default="")
    event_ended_at = models.DateTimeField(
        help_text="When the auction event ended; starts the maturity window",
    )
    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # Split (immutable after creation)
    # ==========================================================================

    gross_amount_cents = models.PositiveBigIntegerField()
    processor_fees_cents = models.PositiveBigIntegerField()
    platform_fee_cents = models.PositiveBigIntegerField()
    reserve_amount_cents = models.PositiveBigIntegerField()
    net_payout_cents = models.PositiveBigIntegerField()

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PayoutState.PENDING,
        choices=PayoutState.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payout (managed by FSM)",
    )
    eligible_at = models.DateTimeField(null=True, blank=True)
    flags = models.JSONField(
        default=list,
        blank=True,
        help_text="Risk flag tags, e.g. ['open_chargeback']",
    )
    requires_review = models.BooleanField(default=False, db_index=True)

    # ==========================================================================
    # Review
    # ==========================================================================

    reviewed_by = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="Admin user id that approved or rejected the payout",
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    review_notes = models.TextField(blank=True, default="")

    # ==========================================================================
    # Transfer
    # ==========================================================================

    transfer_reference = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Transfer ID (tr_xxx)",
    )
    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payout was last claimed for transfer",
    )
    completed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(blank=True, default="")
    last_error_code = models.CharField(max_length=64, blank=True, default="")
    last_error_retryable = models.BooleanField(default=True)
    failed_attempts = models.PositiveSmallIntegerField(default=0)

    # ==========================================================================
    # Reserve Lifecycle
    # ==========================================================================

    trust_level_at_creation = models.CharField(
        max_length=20,
        choices=TrustLevel.choices,
        default=TrustLevel.NEW,
    )
    reserve_hold_days = models.PositiveIntegerField(default=0)
    reserve_release_at = models.DateTimeField(null=True, blank=True, db_index=True)
    reserve_settled_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Concurrency Control
    # ==========================================================================

    version = models.PositiveIntegerField(
        default=1,
        help_text="Incremented on each save",
    )

    objects = PayoutQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payout"
        verbose_name_plural = "Payouts"
        indexes = [
            models.Index(
                fields=["status", "eligible_at"], name="payouts_pay_status_4a1c2e_idx"
            ),
            models.Index(
                fields=["organization_id", "status"], name="payouts_pay_organiz_8d3f7b_idx"
            ),
            models.Index(
                fields=["status", "reserve_release_at"],
                name="payouts_pay_status_c92e51_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["event_id", "organization_id"],
                name="payout_one_per_event_organization",
            ),
            models.CheckConstraint(
                condition=Q(gross_amount_cents__gt=0),
                name="payout_gross_positive",
            ),
            models.CheckConstraint(
                condition=Q(
                    gross_amount_cents=F("processor_fees_cents")
                    + F("platform_fee_cents")
                    + F("reserve_amount_cents")
                    + F("net_payout_cents")
                ),
                name="payout_split_conserves_gross",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.net_payout_cents / 100:.2f} {self.currency.upper()}"
        return f"Payout({self.id}, {self.status}, {amount_display})"

    def save(self, *args, **kwargs):
        """Save with version auto-increment."""
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    def delete(self, *args, **kwargs):
        raise PayoutError(
            "Payouts are part of the audit trail and cannot be deleted",
            error_code="PAYOUT_DELETE_FORBIDDEN",
            details={"payout_id": str(self.pk)},
        )

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=PayoutState.PENDING, target=PayoutState.ELIGIBLE)
    def mark_eligible(self, now: datetime):
        """Maturity window elapsed and no risk found."""
        self.eligible_at = now

    @transition(
        field=status,
        source=[PayoutState.PENDING, PayoutState.ELIGIBLE, PayoutState.FAILED],
        target=PayoutState.HELD,
    )
    def hold(self, flags: Iterable[str]):
        """Divert to manual review, appending any new risk flags."""
        self.requires_review = True
        self.add_flags(flags)

    @transition(field=status, source=PayoutState.HELD, target=PayoutState.ELIGIBLE)
    def approve(self, reviewer_id: str, notes: str, now: datetime):
        self.requires_review = False
        self.reviewed_by = str(reviewer_id)
        self.reviewed_at = now
        self.review_notes = notes or ""
        self.eligible_at = now

    @transition(
        field=status,
        source=[PayoutState.HELD, PayoutState.ELIGIBLE],
        target=PayoutState.REJECTED,
    )
    def reject(self, reviewer_id: str, reason: str, now: datetime):
        self.requires_review = False
        self.reviewed_by = str(reviewer_id)
        self.reviewed_at = now
        self.review_notes = reason

    @transition(
        field=status, source=PayoutState.ELIGIBLE, target=PayoutState.PROCESSING
    )
    def start_processing(self, now: datetime):
        """
        Single-instance claim. Batch runs use Payout.objects.claim() instead,
        which performs the same transition as one conditional UPDATE.
        """
        self.processed_at = now

    @transition(
        field=status, source=PayoutState.PROCESSING, target=PayoutState.COMPLETED
    )
    def complete(self, transfer_reference: str, now: datetime):
        """Gateway confirmed the transfer."""
        if not transfer_reference:
            raise PayoutError(
                "A payout cannot complete without a gateway transfer reference",
                error_code="MISSING_TRANSFER_REFERENCE",
                details={"payout_id": str(self.pk)},
            )
        self.transfer_reference = transfer_reference
        self.completed_at = now
        self.failure_reason = ""
        self.last_error_code = ""

    @transition(field=status, source=PayoutState.PROCESSING, target=PayoutState.FAILED)
    def fail(self, reason: str, error_code: str, retryable: bool, now: datetime):
        """Gateway refused, errored or timed out."""
        self.failed_at = now
        self.failure_reason = reason
        self.last_error_code = error_code
        self.last_error_retryable = retryable
        self.failed_attempts += 1

    @transition(field=status, source=PayoutState.FAILED, target=PayoutState.ELIGIBLE)
    def requeue(self, now: datetime):
        """Make a failed payout eligible for another transfer attempt."""
        self.eligible_at = now

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def add_flags(self, flags: Iterable[str]) -> None:
        existing = list(self.flags or [])
        for flag in flags:
            if flag not in existing:
                existing.append(str(flag))
        self.flags = existing

    @property
    def is_split_balanced(self) -> bool:
        return self.gross_amount_cents == (
            self.processor_fees_cents
            + self.platform_fee_cents
            + self.reserve_amount_cents
            + self.net_payout_cents
        )

    def compute_reserve_release_at(self) -> datetime:
        return self.event_ended_at + timedelta(days=self.reserve_hold_days)
