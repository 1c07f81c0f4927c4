"""
Tests for the chargeback service.
"""

import uuid

import pytest

from payouts.exceptions import (
    ChargebackNotFoundError,
    InvalidAmountError,
    InvalidStateError,
    PayoutValidationError,
)
from payouts.models import Chargeback
from payouts.services.chargebacks import ChargebackService
from payouts.state_machines import ChargebackStatus, ResolutionSource
from payouts.tests.factories import ChargebackFactory


# =============================================================================
# Recording
# =============================================================================


class TestRecordDispute:
    """Tests for ChargebackService.record_dispute."""

    def test_record_new_dispute(self, db):
        """Should create an open chargeback."""
        org_id = uuid.uuid4()
        event_id = uuid.uuid4()

        chargeback, created = ChargebackService.record_dispute(
            gateway_dispute_id="dp_123",
            organization_id=org_id,
            event_id=event_id,
            amount_cents=4000,
            currency="USD",
            reason="fraudulent",
            payment_intent_id="pi_123",
        )

        assert created is True
        assert chargeback.status == ChargebackStatus.OPEN
        assert chargeback.organization_id == org_id
        assert chargeback.event_id == event_id
        assert chargeback.currency == "usd"
        assert chargeback.gateway_payment_intent_id == "pi_123"

    def test_record_is_idempotent(self, db):
        """Should return the existing chargeback for a repeated dispute id."""
        org_id = uuid.uuid4()
        first, _ = ChargebackService.record_dispute("dp_123", org_id, 4000)

        second, created = ChargebackService.record_dispute("dp_123", org_id, 9999)

        assert created is False
        assert second.pk == first.pk
        assert second.amount_cents == 4000
        assert Chargeback.objects.count() == 1

    def test_org_level_dispute(self, db):
        """Should accept a dispute that is not tied to any event."""
        chargeback, _ = ChargebackService.record_dispute("dp_1", uuid.uuid4(), 4000)

        assert chargeback.event_id is None

    @pytest.mark.parametrize("amount", [0, -1, 10.5, None])
    def test_invalid_amount(self, db, amount):
        """Should reject non-positive or fractional amounts."""
        with pytest.raises(InvalidAmountError):
            ChargebackService.record_dispute("dp_1", uuid.uuid4(), amount)

    def test_missing_dispute_id(self, db):
        """Should require the gateway dispute id."""
        with pytest.raises(PayoutValidationError) as exc_info:
            ChargebackService.record_dispute("", uuid.uuid4(), 4000)

        assert exc_info.value.error_code == "MISSING_DISPUTE_ID"


# =============================================================================
# Resolution
# =============================================================================


class TestResolveDispute:
    """Tests for ChargebackService.resolve_dispute."""

    @pytest.mark.parametrize(
        "outcome",
        [ChargebackStatus.WON, ChargebackStatus.LOST, ChargebackStatus.CLOSED],
    )
    def test_resolve_open(self, db, now, outcome):
        """Should resolve an open chargeback by id."""
        chargeback = ChargebackFactory()

        resolved, changed = ChargebackService.resolve_dispute(
            outcome, now=now, chargeback_id=chargeback.id
        )

        assert changed is True
        assert resolved.status == outcome
        assert resolved.resolved_at == now
        assert resolved.resolution_source == ResolutionSource.GATEWAY

    def test_resolve_by_gateway_id(self, db, now):
        """Should find the chargeback by its gateway dispute id."""
        chargeback = ChargebackFactory(gateway_dispute_id="dp_lookup")

        resolved, _ = ChargebackService.resolve_dispute(
            "won", now=now, gateway_dispute_id="dp_lookup", source=ResolutionSource.ADMIN
        )

        assert resolved.pk == chargeback.pk
        assert resolved.resolution_source == ResolutionSource.ADMIN

    def test_same_outcome_is_noop(self, db, now):
        """Should accept a repeated resolution without changing anything."""
        chargeback = ChargebackFactory(status=ChargebackStatus.LOST)

        resolved, changed = ChargebackService.resolve_dispute(
            "lost", now=now, chargeback_id=chargeback.id
        )

        assert changed is False
        assert resolved.resolved_at is None

    def test_lost_cannot_become_won(self, db, now):
        """Should never revert a lost chargeback."""
        chargeback = ChargebackFactory(status=ChargebackStatus.LOST)

        with pytest.raises(InvalidStateError):
            ChargebackService.resolve_dispute("won", now=now, chargeback_id=chargeback.id)

        assert Chargeback.objects.get(pk=chargeback.pk).status == ChargebackStatus.LOST

    def test_unknown_outcome(self, db, now):
        """Should reject outcomes other than won, lost and closed."""
        chargeback = ChargebackFactory()

        with pytest.raises(PayoutValidationError) as exc_info:
            ChargebackService.resolve_dispute("open", now=now, chargeback_id=chargeback.id)

        assert exc_info.value.error_code == "INVALID_OUTCOME"

    def test_unknown_chargeback(self, db, now):
        """Should raise ChargebackNotFoundError."""
        with pytest.raises(ChargebackNotFoundError):
            ChargebackService.resolve_dispute("won", now=now, chargeback_id=uuid.uuid4())

        with pytest.raises(ChargebackNotFoundError):
            ChargebackService.resolve_dispute("won", now=now, gateway_dispute_id="dp_none")

    def test_lost_enqueues_reserve_deduction(
        self, db, now, mocker, django_capture_on_commit_callbacks
    ):
        """Should schedule the reserve deduction after commit."""
        mock_delay = mocker.patch("payouts.tasks.apply_chargeback_to_reserves.delay")
        chargeback = ChargebackFactory()

        with django_capture_on_commit_callbacks(execute=True):
            ChargebackService.resolve_dispute("lost", now=now, chargeback_id=chargeback.id)

        mock_delay.assert_called_once_with(str(chargeback.id))

    def test_won_does_not_enqueue(
        self, db, now, mocker, django_capture_on_commit_callbacks
    ):
        """Should not touch reserves for a won chargeback."""
        mock_delay = mocker.patch("payouts.tasks.apply_chargeback_to_reserves.delay")
        chargeback = ChargebackFactory()

        with django_capture_on_commit_callbacks(execute=True):
            ChargebackService.resolve_dispute("won", now=now, chargeback_id=chargeback.id)

        mock_delay.assert_not_called()

    def test_enqueue_failure_is_swallowed(
        self, db, now, mocker, django_capture_on_commit_callbacks
    ):
        """Should keep the resolution when the broker is unavailable."""
        mocker.patch(
            "payouts.tasks.apply_chargeback_to_reserves.delay",
            side_effect=ConnectionError("broker down"),
        )
        chargeback = ChargebackFactory()

        with django_capture_on_commit_callbacks(execute=True):
            ChargebackService.resolve_dispute("lost", now=now, chargeback_id=chargeback.id)

        assert Chargeback.objects.get(pk=chargeback.pk).status == ChargebackStatus.LOST


# =============================================================================
# Gate Inputs
# =============================================================================


class TestChargebackCounts:
    """Tests for the counts fed to the eligibility gate."""

    def test_open_count_for_event(self, db):
        """Should count the event's chargebacks and org-level ones."""
        org_id = uuid.uuid4()
        event_id = uuid.uuid4()
        ChargebackFactory(organization_id=org_id, event_id=event_id)
        ChargebackFactory(organization_id=org_id, event_id=None)
        ChargebackFactory(organization_id=org_id, event_id=uuid.uuid4())
        ChargebackFactory(
            organization_id=org_id, event_id=event_id, status=ChargebackStatus.WON
        )

        assert ChargebackService.open_chargeback_count(org_id, event_id) == 2
        assert ChargebackService.open_chargeback_count(org_id) == 3

    def test_prior_count_only_lost(self, db):
        """Should count lost chargebacks only."""
        org_id = uuid.uuid4()
        ChargebackFactory(organization_id=org_id, status=ChargebackStatus.LOST)
        ChargebackFactory(organization_id=org_id, status=ChargebackStatus.WON)
        ChargebackFactory(organization_id=org_id)
        ChargebackFactory(status=ChargebackStatus.LOST)

        assert ChargebackService.prior_chargeback_count(org_id) == 1
