"""
Reserve ledger model.

The reserve withheld from a payout is never edited in place. Every
movement (withheld at creation, released to the organization, forfeited
to a chargeback) is one immutable ReserveLedgerEntry, and the remaining
reserve is always computed from the entries.

Usage:
    from payouts.ledger.models import ReserveLedgerEntry

    ReserveLedgerEntry.objects.for_payout(payout).totals()
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q, Sum, Value
from django.db.models.functions import Coalesce

from core.model_mixins import UUIDPrimaryKeyMixin
from payouts.exceptions import PayoutError
from payouts.state_machines import FORFEIT_ENTRY_TYPES, ReserveEntryType


class ReserveLedgerQuerySet(models.QuerySet):
    def for_payout(self, payout) -> ReserveLedgerQuerySet:
        return self.filter(payout=payout)

    def totals(self) -> dict[str, int]:
        """
        Sum entries by direction.

        Returns:
            {"withheld": int, "released": int, "forfeited": int}
        """

        def _sum(condition: Q) -> Coalesce:
            return Coalesce(
                Sum("amount_cents", filter=condition),
                Value(0),
                output_field=models.BigIntegerField(),
            )

        return self.aggregate(
            withheld=_sum(Q(entry_type=ReserveEntryType.WITHHELD)),
            released=_sum(Q(entry_type=ReserveEntryType.RELEASED)),
            forfeited=_sum(Q(entry_type__in=FORFEIT_ENTRY_TYPES)),
        )


class ReserveLedgerEntry(UUIDPrimaryKeyMixin, models.Model):
    """
    One immutable movement of a payout's reserve.

    Entries are append-only: saving an existing entry or deleting one
    raises. Corrections are not supported; the ledger is the audit trail.

    Fields:
        payout: The payout whose reserve moved
        entry_type: withheld | released | forfeited_partial | forfeited_full
        amount_cents: Amount in minor units (always positive)
        related_chargeback: Chargeback a forfeiture was applied to
        transfer_reference: Gateway transfer id of a release
        idempotency_key: Unique key; replaying a write returns the
            existing entry

    Constraints:
        - amount_cents must be positive
        - idempotency_key must be unique
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this entry was recorded",
    )
    payout = models.ForeignKey(
        "payouts.Payout",
        on_delete=models.PROTECT,
        related_name="reserve_entries",
    )
    entry_type = models.CharField(
        max_length=20,
        choices=ReserveEntryType.choices,
    )
    amount_cents = models.PositiveBigIntegerField(
        help_text="Amount in cents (always positive)",
    )
    reason = models.TextField(blank=True, default="")
    related_chargeback = models.ForeignKey(
        "payouts.Chargeback",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reserve_entries",
    )
    transfer_reference = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe Transfer ID for released reserves",
    )
    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Unique key to prevent duplicate entries",
    )

    objects = ReserveLedgerQuerySet.as_manager()

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Reserve Ledger Entry"
        verbose_name_plural = "Reserve Ledger Entries"
        indexes = [
            models.Index(
                fields=["payout", "entry_type"], name="payouts_res_payout__5b8e2c_idx"
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount_cents__gt=0),
                name="reserve_entry_amount_cents_positive",
            )
        ]

    def __str__(self) -> str:
        return f"{self.get_entry_type_display()}: {self.amount_cents} cents"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise PayoutError(
                "Reserve ledger entries are immutable",
                error_code="LEDGER_ENTRY_IMMUTABLE",
                details={"entry_id": str(self.pk)},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise PayoutError(
            "Reserve ledger entries cannot be deleted",
            error_code="LEDGER_ENTRY_IMMUTABLE",
            details={"entry_id": str(self.pk)},
        )

    @property
    def is_forfeiture(self) -> bool:
        return self.entry_type in FORFEIT_ENTRY_TYPES
