"""
Tests for ReserveLedgerService.

Covers the withheld entry, releases, chargeback forfeits, the overdraw
guard, idempotency and settlement.
"""

from datetime import timedelta

import pytest

from payouts.exceptions import InvalidAmountError, PayoutError, ReserveOverdrawnError
from payouts.ledger import ReserveLedgerService
from payouts.ledger.models import ReserveLedgerEntry
from payouts.models import Chargeback, Payout
from payouts.state_machines import ChargebackStatus, ReserveEntryType
from payouts.tests.factories import ChargebackFactory, PayoutFactory


def lost_chargeback(payout, amount_cents, event_id="same", **kwargs):
    """Lost chargeback against the payout's organization."""
    return ChargebackFactory(
        organization_id=payout.organization_id,
        event_id=payout.event_id if event_id == "same" else event_id,
        amount_cents=amount_cents,
        status=ChargebackStatus.LOST,
        **kwargs,
    )


# =============================================================================
# Balance Tests
# =============================================================================


class TestBalance:
    """Tests for balance and remaining_reserve."""

    def test_fresh_payout_balance(self, db, completed_payout):
        """Should show the whole reserve withheld and remaining."""
        balance = ReserveLedgerService.balance(completed_payout)

        assert balance.reserve_cents == 9707
        assert balance.withheld_cents == 9707
        assert balance.released_cents == 0
        assert balance.forfeited_cents == 0
        assert balance.remaining_cents == 9707
        assert balance.is_settled is False

    def test_remaining_after_forfeit_and_release(self, db, completed_payout):
        """Should subtract released and forfeited amounts."""
        lost_chargeback(completed_payout, 4000)
        ReserveLedgerService.apply_lost_chargebacks(completed_payout)
        ReserveLedgerService.record_release(
            completed_payout, amount_cents=5707, transfer_reference="tr_rel"
        )

        balance = ReserveLedgerService.balance(completed_payout)
        assert balance.forfeited_cents == 4000
        assert balance.released_cents == 5707
        assert balance.remaining_cents == 0
        assert balance.to_dict()["remaining_cents"] == 0


# =============================================================================
# Withheld Tests
# =============================================================================


class TestRecordWithheld:
    """Tests for record_withheld."""

    def test_withheld_is_idempotent(self, db, completed_payout):
        """Should return the same entry when recorded twice."""
        first = ReserveLedgerEntry.objects.get(payout=completed_payout)

        again = ReserveLedgerService.record_withheld(completed_payout)

        assert again.pk == first.pk
        assert ReserveLedgerEntry.objects.filter(payout=completed_payout).count() == 1
        assert first.idempotency_key == f"reserve:withheld:{completed_payout.pk}"

    def test_zero_reserve_writes_nothing(self, db):
        """Should skip the entry for a payout without a reserve."""
        payout = PayoutFactory(
            reserve_amount_cents=0, net_payout_cents=92070, reserve_entry=False
        )

        assert ReserveLedgerService.record_withheld(payout) is None
        assert not ReserveLedgerEntry.objects.filter(payout=payout).exists()


# =============================================================================
# Release Tests
# =============================================================================


class TestRecordRelease:
    """Tests for record_release."""

    def test_release_full_reserve(self, db, completed_payout):
        """Should record the release with its transfer reference."""
        entry = ReserveLedgerService.record_release(
            completed_payout, amount_cents=9707, transfer_reference="tr_rel"
        )

        assert entry.entry_type == ReserveEntryType.RELEASED
        assert entry.amount_cents == 9707
        assert entry.transfer_reference == "tr_rel"
        assert ReserveLedgerService.remaining_reserve(completed_payout) == 0

    def test_release_is_idempotent(self, db, completed_payout):
        """Should not release twice for the same payout."""
        first = ReserveLedgerService.record_release(
            completed_payout, amount_cents=9707, transfer_reference="tr_rel"
        )
        second = ReserveLedgerService.record_release(
            completed_payout, amount_cents=9707, transfer_reference="tr_rel"
        )

        assert second.pk == first.pk
        assert ReserveLedgerService.balance(completed_payout).released_cents == 9707

    def test_release_more_than_reserve_raises(self, db, completed_payout):
        """Should refuse a release larger than the reserve."""
        with pytest.raises(ReserveOverdrawnError) as exc_info:
            ReserveLedgerService.record_release(
                completed_payout, amount_cents=9708, transfer_reference="tr_rel"
            )

        assert exc_info.value.details["reserve_cents"] == 9707
        assert ReserveLedgerService.balance(completed_payout).released_cents == 0

    def test_release_after_forfeit_overdraw_raises(self, db, completed_payout):
        """Should refuse releasing the whole reserve after a forfeit."""
        lost_chargeback(completed_payout, 4000)
        ReserveLedgerService.apply_lost_chargebacks(completed_payout)

        with pytest.raises(ReserveOverdrawnError):
            ReserveLedgerService.record_release(
                completed_payout, amount_cents=9707, transfer_reference="tr_rel"
            )

    @pytest.mark.parametrize("amount", [0, -1])
    def test_non_positive_amount_raises(self, db, completed_payout, amount):
        """Should refuse zero and negative amounts."""
        with pytest.raises(InvalidAmountError):
            ReserveLedgerService.record_release(
                completed_payout, amount_cents=amount, transfer_reference="tr_rel"
            )


# =============================================================================
# Forfeit Tests
# =============================================================================


class TestApplyLostChargebacks:
    """Tests for apply_lost_chargebacks."""

    def test_partial_forfeit(self, db, completed_payout):
        """Should forfeit $40.00 of a $97.07 reserve as a partial forfeit."""
        chargeback = lost_chargeback(completed_payout, 4000)

        entries = ReserveLedgerService.apply_lost_chargebacks(completed_payout)

        assert len(entries) == 1
        assert entries[0].entry_type == ReserveEntryType.FORFEITED_PARTIAL
        assert entries[0].amount_cents == 4000
        assert entries[0].related_chargeback_id == chargeback.pk
        assert ReserveLedgerService.remaining_reserve(completed_payout) == 5707

        chargeback = Chargeback.objects.get(pk=chargeback.pk)
        assert chargeback.deducted_from_reserve is True
        assert chargeback.recovered_cents == 4000
        assert chargeback.shortfall_cents == 0

    def test_full_forfeit_with_shortfall(self, db, completed_payout):
        """Should forfeit the whole reserve and record the shortfall."""
        chargeback = lost_chargeback(completed_payout, 15000)

        entries = ReserveLedgerService.apply_lost_chargebacks(completed_payout)

        assert entries[0].entry_type == ReserveEntryType.FORFEITED_FULL
        assert entries[0].amount_cents == 9707
        assert ReserveLedgerService.remaining_reserve(completed_payout) == 0

        chargeback = Chargeback.objects.get(pk=chargeback.pk)
        assert chargeback.recovered_cents == 9707
        assert chargeback.shortfall_cents == 15000 - 9707

    def test_exact_amount_is_full_forfeit(self, db, completed_payout):
        """Should call a forfeit that empties the reserve a full forfeit."""
        lost_chargeback(completed_payout, 9707)

        entries = ReserveLedgerService.apply_lost_chargebacks(completed_payout)

        assert entries[0].entry_type == ReserveEntryType.FORFEITED_FULL

    def test_oldest_chargeback_first(self, db, completed_payout):
        """Should apply chargebacks in creation order until the reserve runs out."""
        first = lost_chargeback(completed_payout, 6000, gateway_dispute_id="dp_a")
        second = lost_chargeback(completed_payout, 6000, gateway_dispute_id="dp_b")

        entries = ReserveLedgerService.apply_lost_chargebacks(completed_payout)

        assert [e.related_chargeback_id for e in entries] == [first.pk, second.pk]
        assert [e.amount_cents for e in entries] == [6000, 3707]
        assert [e.entry_type for e in entries] == [
            ReserveEntryType.FORFEITED_PARTIAL,
            ReserveEntryType.FORFEITED_FULL,
        ]
        assert Chargeback.objects.get(pk=second.pk).shortfall_cents == 2293

    def test_org_level_chargeback_applies(self, db, completed_payout):
        """Should apply a chargeback tied to no event."""
        lost_chargeback(completed_payout, 4000, event_id=None)

        entries = ReserveLedgerService.apply_lost_chargebacks(completed_payout)

        assert len(entries) == 1

    def test_other_event_chargeback_ignored(self, db, completed_payout):
        """Should leave chargebacks for other events to their own payouts."""
        other = PayoutFactory(organization_id=completed_payout.organization_id)
        lost_chargeback(other, 4000)

        assert ReserveLedgerService.apply_lost_chargebacks(completed_payout) == []

    def test_open_and_won_chargebacks_ignored(self, db, completed_payout):
        """Should only forfeit to lost chargebacks."""
        ChargebackFactory(
            organization_id=completed_payout.organization_id,
            event_id=completed_payout.event_id,
        )
        ChargebackFactory(
            organization_id=completed_payout.organization_id,
            event_id=completed_payout.event_id,
            status=ChargebackStatus.WON,
        )

        assert ReserveLedgerService.apply_lost_chargebacks(completed_payout) == []

    def test_replay_is_idempotent(self, db, completed_payout):
        """Should not deduct the same chargeback twice."""
        chargeback = lost_chargeback(completed_payout, 4000)
        ReserveLedgerService.apply_lost_chargebacks(completed_payout)

        again = ReserveLedgerService.apply_lost_chargebacks(
            completed_payout, chargebacks=[chargeback]
        )

        assert again == []
        assert ReserveLedgerService.balance(completed_payout).forfeited_cents == 4000

    def test_explicit_chargeback_from_other_organization_ignored(
        self, db, completed_payout
    ):
        """Should never apply another organization's chargeback."""
        foreign = ChargebackFactory(status=ChargebackStatus.LOST)

        entries = ReserveLedgerService.apply_lost_chargebacks(
            completed_payout, chargebacks=[foreign]
        )

        assert entries == []


class TestRecordShortfall:
    """Tests for record_shortfall."""

    def test_records_outstanding_amount(self, db, completed_payout):
        """Should turn the uncovered amount into the shortfall."""
        chargeback = lost_chargeback(completed_payout, 4000, recovered_cents=1500)

        assert ReserveLedgerService.record_shortfall(chargeback) == 2500

        stored = Chargeback.objects.get(pk=chargeback.pk)
        assert stored.shortfall_cents == 2500
        assert stored.deducted_from_reserve is True

    def test_second_call_changes_nothing(self, db, completed_payout):
        """Should leave a closed deduction alone."""
        chargeback = lost_chargeback(completed_payout, 4000)
        ReserveLedgerService.record_shortfall(chargeback)

        assert ReserveLedgerService.record_shortfall(chargeback) == 0
        assert Chargeback.objects.get(pk=chargeback.pk).shortfall_cents == 4000

    def test_open_chargeback_ignored(self, db, open_chargeback):
        """Should not close a dispute that is still open."""
        assert ReserveLedgerService.record_shortfall(open_chargeback) == 0
        assert Chargeback.objects.get(pk=open_chargeback.pk).deducted_from_reserve is False


# =============================================================================
# Settlement Tests
# =============================================================================


class TestSettleIfDisposed:
    """Tests for settle_if_disposed."""

    def test_not_settled_while_reserve_remains(self, db, completed_payout, now):
        """Should not settle while reserve remains."""
        assert ReserveLedgerService.settle_if_disposed(completed_payout, now) is False
        assert Payout.objects.get(pk=completed_payout.pk).reserve_settled_at is None

    def test_settled_once_disposed(self, db, completed_payout, now):
        """Should stamp reserve_settled_at once nothing remains."""
        ReserveLedgerService.record_release(
            completed_payout, amount_cents=9707, transfer_reference="tr_rel"
        )

        assert ReserveLedgerService.settle_if_disposed(completed_payout, now) is True
        assert Payout.objects.get(pk=completed_payout.pk).reserve_settled_at == now

    def test_settle_keeps_first_timestamp(self, db, completed_payout, now):
        """Should not move the settlement time on a replay."""
        ReserveLedgerService.record_release(
            completed_payout, amount_cents=9707, transfer_reference="tr_rel"
        )
        ReserveLedgerService.settle_if_disposed(completed_payout, now)

        ReserveLedgerService.settle_if_disposed(completed_payout, now + timedelta(hours=1))

        assert Payout.objects.get(pk=completed_payout.pk).reserve_settled_at == now


# =============================================================================
# Immutability Tests
# =============================================================================


class TestEntryImmutability:
    """Ledger entries are append-only."""

    def test_entry_cannot_be_updated(self, db, completed_payout):
        """Should refuse to save an existing entry."""
        entry = ReserveLedgerEntry.objects.get(payout=completed_payout)
        entry.reason = "edited"

        with pytest.raises(PayoutError) as exc_info:
            entry.save()

        assert exc_info.value.error_code == "LEDGER_ENTRY_IMMUTABLE"

    def test_entry_cannot_be_deleted(self, db, completed_payout):
        """Should refuse to delete an entry."""
        entry = ReserveLedgerEntry.objects.get(payout=completed_payout)

        with pytest.raises(PayoutError):
            entry.delete()

        assert ReserveLedgerEntry.objects.filter(pk=entry.pk).exists()
