"""
Tests for payout domain models.

Tests model constraints, defaults, querysets and basic functionality for
the payout models. Ledger entry tests live in payouts/ledger/tests.
"""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction
from django.utils import timezone

from payouts.exceptions import PayoutError
from payouts.models import (
    Chargeback,
    FeePolicy,
    OrganizationTrustProfile,
    Payout,
    TrustTierPolicy,
    WebhookEvent,
)
from payouts.state_machines import (
    ChargebackStatus,
    PayoutState,
    TrustLevel,
    WebhookEventStatus,
)
from payouts.tests.factories import (
    ChargebackFactory,
    OrganizationTrustProfileFactory,
    PayoutFactory,
    WebhookEventFactory,
)


# =============================================================================
# Payout Tests
# =============================================================================


class TestPayoutModel:
    """Tests for Payout model."""

    def test_create_with_balanced_split(self, db):
        """Should create a payout whose split adds up to gross."""
        payout = PayoutFactory()

        assert payout.pk is not None
        assert isinstance(payout.pk, uuid.UUID)
        assert payout.is_split_balanced
        assert payout.gross_amount_cents == 100000

    def test_default_values(self, db):
        """Should start pending, unreviewed and at version 1."""
        payout = PayoutFactory()

        assert payout.status == PayoutState.PENDING
        assert payout.flags == []
        assert payout.requires_review is False
        assert payout.transfer_reference is None
        assert payout.failed_attempts == 0
        assert payout.version == 1

    def test_unbalanced_split_rejected(self, db):
        """Should reject a split that does not add up to gross."""
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                PayoutFactory(net_payout_cents=82364, reserve_entry=False)

    def test_zero_gross_rejected(self, db):
        """Should reject a payout with no gross amount."""
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                PayoutFactory(
                    gross_amount_cents=0,
                    processor_fees_cents=0,
                    platform_fee_cents=0,
                    reserve_amount_cents=0,
                    net_payout_cents=0,
                    reserve_entry=False,
                )

    def test_one_payout_per_event_and_organization(self, db):
        """Should reject a second payout for the same event and organization."""
        payout = PayoutFactory()

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                PayoutFactory(
                    event_id=payout.event_id,
                    organization_id=payout.organization_id,
                    reserve_entry=False,
                )

    def test_same_event_different_organization_allowed(self, db):
        """Should allow one payout per organization for a shared event."""
        payout = PayoutFactory()
        other = PayoutFactory(event_id=payout.event_id)

        assert other.pk != payout.pk

    def test_version_increments_on_update(self, db):
        """Should increment version on every save after creation."""
        payout = PayoutFactory()

        payout.review_notes = "checked"
        payout.save()
        assert payout.version == 2

        payout.save()
        assert payout.version == 3

    def test_delete_forbidden(self, db):
        """Should refuse to delete a payout."""
        payout = PayoutFactory()

        with pytest.raises(PayoutError) as exc_info:
            payout.delete()

        assert exc_info.value.error_code == "PAYOUT_DELETE_FORBIDDEN"
        assert Payout.objects.filter(pk=payout.pk).exists()

    def test_status_cannot_be_assigned_directly(self, db):
        """Should only change status through FSM transitions."""
        payout = PayoutFactory()

        with pytest.raises(AttributeError):
            payout.status = PayoutState.COMPLETED

    def test_add_flags_deduplicates(self, db):
        """Should append new flags once, preserving order."""
        payout = PayoutFactory(flags=["open_chargeback"])

        payout.add_flags(["exceeds_auto_limit", "open_chargeback"])

        assert payout.flags == ["open_chargeback", "exceeds_auto_limit"]

    def test_compute_reserve_release_at(self, db):
        """Should release the reserve hold_days after the event ended."""
        ended = timezone.now() - timedelta(days=3)
        payout = PayoutFactory(event_ended_at=ended, reserve_hold_days=14)

        assert payout.compute_reserve_release_at() == ended + timedelta(days=14)
        assert payout.reserve_release_at == ended + timedelta(days=14)

    def test_str_representation(self, db):
        """Should show id, status and net amount."""
        payout = PayoutFactory()

        assert "823.63 USD" in str(payout)
        assert "pending" in str(payout)


class TestPayoutQuerySet:
    """Tests for the Payout queryset helpers and the compare-and-set claim."""

    def test_claim_moves_eligible_to_processing(self, db, eligible_payout, now):
        """Should claim an eligible payout exactly once."""
        assert Payout.objects.claim(eligible_payout.id, now=now) is True

        claimed = Payout.objects.get(pk=eligible_payout.pk)
        assert claimed.status == PayoutState.PROCESSING
        assert claimed.processed_at == now
        assert claimed.version == eligible_payout.version + 1

    def test_second_claim_loses(self, db, eligible_payout, now):
        """Should refuse a claim once another worker holds it."""
        assert Payout.objects.claim(eligible_payout.id, now=now) is True
        assert Payout.objects.claim(eligible_payout.id, now=now) is False

    def test_claim_ignores_non_eligible(self, db, held_payout, now):
        """Should not claim a payout outside the eligible state."""
        assert Payout.objects.claim(held_payout.id, now=now) is False
        assert Payout.objects.get(pk=held_payout.pk).status == PayoutState.HELD

    def test_needing_review(self, db, held_payout, pending_payout):
        """Should list only held payouts."""
        assert list(Payout.objects.needing_review()) == [held_payout]

    def test_reserve_release_due(self, db, completed_payout, now):
        """Should include completed payouts past their release date only."""
        not_due = PayoutFactory(completed=True, reserve_release_at=now + timedelta(days=1))
        settled = PayoutFactory(
            completed=True,
            event_ended_at=now - timedelta(days=60),
            reserve_settled_at=now,
        )

        due = list(Payout.objects.reserve_release_due(now))

        assert completed_payout in due
        assert not_due not in due
        assert settled not in due

    def test_reserve_release_due_skips_zero_reserve(self, db, now):
        """Should skip payouts that withheld no reserve."""
        PayoutFactory(
            completed=True,
            processor_fees_cents=2930,
            platform_fee_cents=5000,
            reserve_amount_cents=0,
            net_payout_cents=92070,
            event_ended_at=now - timedelta(days=60),
        )

        assert not Payout.objects.reserve_release_due(now).exists()

    def test_for_organization(self, db, pending_payout):
        """Should filter by organization id."""
        PayoutFactory()

        assert list(Payout.objects.for_organization(pending_payout.organization_id)) == [
            pending_payout
        ]


# =============================================================================
# Chargeback Tests
# =============================================================================


class TestChargebackModel:
    """Tests for Chargeback model."""

    def test_default_values(self, db):
        """Should start open with nothing recovered."""
        chargeback = ChargebackFactory()

        assert chargeback.status == ChargebackStatus.OPEN
        assert chargeback.deducted_from_reserve is False
        assert chargeback.recovered_cents == 0
        assert chargeback.shortfall_cents == 0
        assert chargeback.outstanding_cents == 4000

    def test_gateway_dispute_id_unique(self, db):
        """Should reject a duplicate gateway dispute id."""
        ChargebackFactory(gateway_dispute_id="dp_dup")

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                ChargebackFactory(gateway_dispute_id="dp_dup")

    def test_outstanding_never_negative(self, db):
        """Should clamp outstanding at zero once fully recovered."""
        chargeback = ChargebackFactory(amount_cents=4000, recovered_cents=4000)

        assert chargeback.outstanding_cents == 0

    def test_affecting_event_includes_org_level(self, db):
        """Should match chargebacks for the event and those tied to no event."""
        org_id = uuid.uuid4()
        event_id = uuid.uuid4()
        for_event = ChargebackFactory(organization_id=org_id, event_id=event_id)
        org_level = ChargebackFactory(organization_id=org_id, event_id=None)
        other_event = ChargebackFactory(organization_id=org_id, event_id=uuid.uuid4())

        matched = set(Chargeback.objects.affecting_event(org_id, event_id))

        assert matched == {for_event, org_level}
        assert other_event not in matched

    def test_pending_deduction(self, db):
        """Should list lost chargebacks not yet deducted."""
        lost = ChargebackFactory(status=ChargebackStatus.LOST)
        ChargebackFactory(status=ChargebackStatus.LOST, deducted_from_reserve=True)
        ChargebackFactory(status=ChargebackStatus.WON)

        assert list(Chargeback.objects.pending_deduction()) == [lost]


# =============================================================================
# OrganizationTrustProfile Tests
# =============================================================================


class TestOrganizationTrustProfileModel:
    """Tests for OrganizationTrustProfile model."""

    def test_can_receive_transfers(self, db):
        """Should need both a connected account and payouts enabled."""
        assert OrganizationTrustProfileFactory().can_receive_transfers is True
        assert (
            OrganizationTrustProfileFactory(payouts_enabled=False).can_receive_transfers
            is False
        )
        assert (
            OrganizationTrustProfileFactory(stripe_account_id="").can_receive_transfers
            is False
        )

    def test_organization_id_unique(self, db):
        """Should keep one trust profile per organization."""
        profile = OrganizationTrustProfileFactory()

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                OrganizationTrustProfile.objects.create(
                    organization_id=profile.organization_id
                )

    def test_defaults_to_new_tier(self, db):
        """Should default to the new tier without a payout account."""
        profile = OrganizationTrustProfile.objects.create(organization_id=uuid.uuid4())

        assert profile.trust_level == TrustLevel.NEW
        assert profile.can_receive_transfers is False


# =============================================================================
# Policy Tests
# =============================================================================


class TestSeededPolicies:
    """Tests for the policies installed by the seed migration."""

    def test_usd_fee_policy_seeded(self, db):
        """Should seed the USD default fee policy."""
        policy = FeePolicy.objects.get(currency="usd", region="", is_active=True)

        assert policy.processor_fee_percent == Decimal("2.900")
        assert policy.processor_fee_fixed_cents == 30
        assert policy.free_mode is False

    @pytest.mark.parametrize(
        "trust_level,hold_days",
        [
            (TrustLevel.NEW, 30),
            (TrustLevel.ESTABLISHED, 21),
            (TrustLevel.TRUSTED, 14),
            (TrustLevel.VERIFIED_NONPROFIT, 14),
            (TrustLevel.FLAGGED, 60),
        ],
    )
    def test_every_tier_seeded(self, db, trust_level, hold_days):
        """Should seed a tier policy for every trust level."""
        policy = TrustTierPolicy.objects.get(trust_level=trust_level)

        assert policy.reserve_hold_days == hold_days

    def test_one_active_policy_per_currency_region(self, db):
        """Should reject a second active policy for the same currency/region."""
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                FeePolicy.objects.create(
                    currency="usd",
                    region="",
                    processor_fee_percent=Decimal("3.000"),
                    platform_fee_percent=Decimal("4.000"),
                )


# =============================================================================
# WebhookEvent Tests
# =============================================================================


class TestWebhookEventModel:
    """Tests for WebhookEvent model."""

    def test_default_values(self, db):
        """Should start pending with no retries."""
        event = WebhookEventFactory()

        assert event.status == WebhookEventStatus.PENDING
        assert event.retry_count == 0
        assert event.is_processed is False

    def test_stripe_event_id_unique(self, db):
        """Should reject a duplicate Stripe event id."""
        WebhookEventFactory(stripe_event_id="evt_dup")

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                WebhookEvent.objects.create(
                    stripe_event_id="evt_dup",
                    event_type="charge.dispute.created",
                    payload={},
                )

    def test_mark_processing_counts_attempts(self, db):
        """Should count every processing attempt."""
        event = WebhookEventFactory()

        event.mark_processing()
        event.mark_failed("boom")
        event.mark_processing()

        assert event.status == WebhookEventStatus.PROCESSING
        assert event.retry_count == 2

    def test_mark_processed_clears_error(self, db, now):
        """Should clear a previous error once processed."""
        event = WebhookEventFactory(status=WebhookEventStatus.FAILED, error_message="x")

        event.mark_processed(now=now)

        assert event.is_processed is True
        assert event.processed_at == now
        assert event.error_message == ""

    def test_get_object(self, db):
        """Should return data.object and its id."""
        event = WebhookEventFactory(
            payload={"id": "evt_1", "data": {"object": {"id": "dp_1", "amount": 4000}}}
        )

        assert event.get_object() == {"id": "dp_1", "amount": 4000}
        assert event.get_object_id() == "dp_1"

    def test_get_object_with_malformed_payload(self, db):
        """Should return an empty dict for payloads without data.object."""
        event = WebhookEventFactory(payload={"id": "evt_1", "data": None})

        assert event.get_object() == {}
        assert event.get_object_id() is None
