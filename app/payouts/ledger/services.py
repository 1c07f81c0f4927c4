"""
Reserve ledger service.

All reserve ledger writes go through ReserveLedgerService. Every write:
- locks the payout row (select_for_update) for the duration of the write
- is idempotent on its idempotency key (replays return the existing entry)
- checks that released + forfeited never exceeds the payout's reserve

Usage:
    from payouts.ledger import ReserveLedgerService

    ReserveLedgerService.record_withheld(payout)
    entries = ReserveLedgerService.apply_lost_chargebacks(payout)
    balance = ReserveLedgerService.balance(payout)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from core.services import BaseService
from payouts.exceptions import InvalidAmountError, ReserveOverdrawnError
from payouts.models.chargeback import Chargeback
from payouts.models.payout import Payout
from payouts.state_machines import ChargebackStatus, ReserveEntryType

from .models import ReserveLedgerEntry
from .types import ReserveBalance

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime


class ReserveLedgerService(BaseService):
    """
    Service class for reserve ledger operations.

    Entry idempotency keys:
        reserve:withheld:{payout}
        reserve:forfeit:{payout}:{chargeback}
        reserve:release:{payout}
    """

    # ==========================================================================
    # Reads
    # ==========================================================================

    @classmethod
    def balance(cls, payout: Payout) -> ReserveBalance:
        totals = ReserveLedgerEntry.objects.for_payout(payout).totals()
        return ReserveBalance(
            reserve_cents=payout.reserve_amount_cents,
            withheld_cents=totals["withheld"],
            released_cents=totals["released"],
            forfeited_cents=totals["forfeited"],
            currency=payout.currency,
        )

    @classmethod
    def remaining_reserve(cls, payout: Payout) -> int:
        """Reserve not yet released or forfeited, in cents."""
        return cls.balance(payout).remaining_cents

    # ==========================================================================
    # Writes
    # ==========================================================================

    @classmethod
    def record_withheld(cls, payout: Payout) -> ReserveLedgerEntry | None:
        """
        Record the reserve withheld when the payout was created.

        Returns None for a payout with no reserve.
        """
        if payout.reserve_amount_cents == 0:
            return None

        with cls.atomic():
            locked = cls._lock_payout(payout)
            entry, _ = cls._append(
                locked,
                entry_type=ReserveEntryType.WITHHELD,
                amount_cents=locked.reserve_amount_cents,
                idempotency_key=f"reserve:withheld:{locked.pk}",
                reason="Reserve withheld at payout creation",
            )
        return entry

    @classmethod
    def record_release(
        cls,
        payout: Payout,
        amount_cents: int,
        transfer_reference: str,
    ) -> ReserveLedgerEntry:
        """
        Record a reserve release after the gateway transfer succeeded.

        Raises:
            ReserveOverdrawnError: If the release exceeds the remaining reserve
        """
        with cls.atomic():
            locked = cls._lock_payout(payout)
            entry, created = cls._append(
                locked,
                entry_type=ReserveEntryType.RELEASED,
                amount_cents=amount_cents,
                idempotency_key=f"reserve:release:{locked.pk}",
                reason="Reserve released after hold period",
                transfer_reference=transfer_reference,
            )

        if created:
            cls.get_logger().info(
                "Reserve released",
                extra={
                    "payout_id": str(payout.pk),
                    "amount_cents": amount_cents,
                    "transfer_reference": transfer_reference,
                },
            )
        return entry

    @classmethod
    def apply_lost_chargebacks(
        cls,
        payout: Payout,
        chargebacks: Iterable[Chargeback] | None = None,
    ) -> list[ReserveLedgerEntry]:
        """
        Forfeit reserve to lost chargebacks, oldest first.

        Without an explicit list, applies every lost chargeback of the
        payout's organization that has not been deducted yet and is tied
        to the payout's event or to no event.

        Each deduction is min(outstanding chargeback amount, remaining
        reserve). A deduction that empties the reserve is recorded as
        forfeited_full, anything smaller as forfeited_partial. Any amount
        the reserve cannot cover is stored as the chargeback's shortfall.

        Returns:
            Entries created by this call (replays are not included)
        """
        created_entries: list[ReserveLedgerEntry] = []
        logger = cls.get_logger()

        with cls.atomic():
            locked = cls._lock_payout(payout)

            if chargebacks is None:
                candidates = list(
                    Chargeback.objects.pending_deduction()
                    .affecting_event(locked.organization_id, locked.event_id)
                    .select_for_update()
                    .order_by("created_at")
                )
            else:
                candidates = sorted(
                    Chargeback.objects.select_for_update().filter(
                        pk__in=[chargeback.pk for chargeback in chargebacks],
                        organization_id=locked.organization_id,
                    ),
                    key=lambda chargeback: chargeback.created_at,
                )

            for chargeback in candidates:
                if (
                    chargeback.status != ChargebackStatus.LOST
                    or chargeback.outstanding_cents == 0
                ):
                    continue

                remaining = cls.remaining_reserve(locked)
                if remaining == 0:
                    break

                deduct = min(chargeback.outstanding_cents, remaining)
                entry_type = (
                    ReserveEntryType.FORFEITED_FULL
                    if deduct == remaining
                    else ReserveEntryType.FORFEITED_PARTIAL
                )
                entry, created = cls._append(
                    locked,
                    entry_type=entry_type,
                    amount_cents=deduct,
                    idempotency_key=f"reserve:forfeit:{locked.pk}:{chargeback.pk}",
                    reason=f"Chargeback {chargeback.gateway_dispute_id} lost",
                    related_chargeback=chargeback,
                )
                if not created:
                    continue

                chargeback.recovered_cents += deduct
                chargeback.shortfall_cents = max(
                    chargeback.amount_cents - chargeback.recovered_cents, 0
                )
                chargeback.deducted_from_reserve = True
                chargeback.save(
                    update_fields=[
                        "recovered_cents",
                        "shortfall_cents",
                        "deducted_from_reserve",
                        "updated_at",
                    ]
                )
                created_entries.append(entry)

                logger.info(
                    "Reserve forfeited to chargeback",
                    extra={
                        "payout_id": str(locked.pk),
                        "chargeback_id": str(chargeback.pk),
                        "amount_cents": deduct,
                        "entry_type": str(entry_type),
                    },
                )
                if chargeback.shortfall_cents > 0:
                    logger.warning(
                        "Chargeback exceeds remaining reserve",
                        extra={
                            "payout_id": str(locked.pk),
                            "chargeback_id": str(chargeback.pk),
                            "shortfall_cents": chargeback.shortfall_cents,
                        },
                    )

        return created_entries

    @classmethod
    def record_shortfall(cls, chargeback: Chargeback) -> int:
        """
        Close out a lost chargeback that no reserve is left to cover.

        The outstanding amount becomes the chargeback's shortfall and the
        deduction is marked done. Calling it again changes nothing.

        Returns:
            The shortfall recorded by this call (0 when already closed)
        """
        with cls.atomic():
            locked = Chargeback.objects.select_for_update().get(pk=chargeback.pk)
            if (
                locked.status != ChargebackStatus.LOST
                or locked.deducted_from_reserve
            ):
                return 0

            locked.shortfall_cents = locked.outstanding_cents
            locked.deducted_from_reserve = True
            locked.save(
                update_fields=["shortfall_cents", "deducted_from_reserve", "updated_at"]
            )

        if locked.shortfall_cents > 0:
            cls.get_logger().warning(
                "Chargeback exceeds remaining reserve",
                extra={
                    "chargeback_id": str(locked.pk),
                    "shortfall_cents": locked.shortfall_cents,
                },
            )
        return locked.shortfall_cents

    @classmethod
    def settle_if_disposed(cls, payout: Payout, now: datetime) -> bool:
        """
        Stamp reserve_settled_at once the ledger shows nothing remaining.

        Returns:
            True if the payout is (now) settled
        """
        with cls.atomic():
            locked = cls._lock_payout(payout)
            if locked.reserve_settled_at is not None:
                return True
            if cls.remaining_reserve(locked) > 0:
                return False
            locked.reserve_settled_at = now
            locked.save(update_fields=["reserve_settled_at", "updated_at", "version"])

        payout.reserve_settled_at = now
        return True

    # ==========================================================================
    # Internals
    # ==========================================================================

    @staticmethod
    def _lock_payout(payout: Payout) -> Payout:
        return Payout.objects.select_for_update().get(pk=payout.pk)

    @classmethod
    def _append(
        cls,
        payout: Payout,
        *,
        entry_type: str,
        amount_cents: int,
        idempotency_key: str,
        reason: str = "",
        related_chargeback: Chargeback | None = None,
        transfer_reference: str | None = None,
    ) -> tuple[ReserveLedgerEntry, bool]:
        """
        Append one entry to a locked payout's reserve ledger.

        The caller must hold the payout row lock.

        Returns:
            (entry, created). An existing entry with the same key is
            returned as-is.
        """
        existing = ReserveLedgerEntry.objects.filter(
            idempotency_key=idempotency_key
        ).first()
        if existing is not None:
            return existing, False

        if not isinstance(amount_cents, int) or amount_cents <= 0:
            raise InvalidAmountError(
                "Reserve ledger amounts must be positive whole cents",
                details={"amount_cents": amount_cents},
            )

        balance = cls.balance(payout)
        if entry_type == ReserveEntryType.WITHHELD:
            would_exceed = balance.withheld_cents + amount_cents > payout.reserve_amount_cents
        else:
            would_exceed = balance.disposed_cents + amount_cents > payout.reserve_amount_cents

        if would_exceed:
            raise ReserveOverdrawnError(
                "Ledger write would exceed the payout's reserve",
                details={
                    "payout_id": str(payout.pk),
                    "entry_type": str(entry_type),
                    "amount_cents": amount_cents,
                    "reserve_cents": payout.reserve_amount_cents,
                    "released_cents": balance.released_cents,
                    "forfeited_cents": balance.forfeited_cents,
                },
            )

        try:
            with transaction.atomic():
                entry = ReserveLedgerEntry.objects.create(
                    payout=payout,
                    entry_type=entry_type,
                    amount_cents=amount_cents,
                    idempotency_key=idempotency_key,
                    reason=reason,
                    related_chargeback=related_chargeback,
                    transfer_reference=transfer_reference,
                )
        except IntegrityError:
            # Another process wrote the same key between the check and create
            return ReserveLedgerEntry.objects.get(idempotency_key=idempotency_key), False

        return entry, True
