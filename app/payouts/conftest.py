"""
Pytest fixtures shared by the payouts test packages.

Fixtures here are visible to payouts/tests and to the tests beside each
subpackage (services, workers, ledger, adapters, webhooks).
Fixtures are designed to provide payouts in various states for testing
state transitions, the batch jobs and the admin API.

Usage:
    def test_complete_payout(processing_payout, now):
        processing_payout.complete(transfer_reference="tr_123", now=now)
        processing_payout.save()
        assert processing_payout.status == PayoutState.COMPLETED
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from payouts.adapters import TransferResult
from payouts.state_machines import PayoutState, TrustLevel
from payouts.tests.factories import (
    ChargebackFactory,
    OrganizationTrustProfileFactory,
    PayoutFactory,
    UserFactory,
    WebhookEventFactory,
)


# =============================================================================
# Time
# =============================================================================


@pytest.fixture
def now():
    """A fixed 'now' shared by the setup and the code under test."""
    return timezone.now()


# =============================================================================
# User and API Client Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Create a regular (non-staff) user."""
    return UserFactory()


@pytest.fixture
def staff_user(db):
    """Create a staff user allowed to use the admin API."""
    return UserFactory(is_staff=True)


@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


@pytest.fixture
def staff_client(staff_user):
    """API client authenticated as a staff user."""
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


# =============================================================================
# Organization Fixtures
# =============================================================================


@pytest.fixture
def organization(db):
    """
    Trusted organization with a connected account ready for transfers.

    The trusted tier's automatic payout limit is above the default payout's
    net amount, so its payouts pass the gate.
    """
    return OrganizationTrustProfileFactory(
        trust_level=TrustLevel.TRUSTED,
        successful_events_count=12,
    )


@pytest.fixture
def new_organization(db):
    """New-tier organization (automatic payout limit $500.00)."""
    return OrganizationTrustProfileFactory(trust_level=TrustLevel.NEW)


@pytest.fixture
def organization_without_account(db):
    """Organization whose connected account cannot receive transfers yet."""
    return OrganizationTrustProfileFactory(
        trust_level=TrustLevel.TRUSTED,
        stripe_account_id="",
        payouts_enabled=False,
    )


# =============================================================================
# Payout Fixtures
# =============================================================================


@pytest.fixture
def pending_payout(db, organization):
    """Pending payout whose event ended ten days ago (past maturity)."""
    return PayoutFactory(organization_id=organization.organization_id)


@pytest.fixture
def immature_payout(db, organization):
    """Pending payout whose event ended yesterday."""
    return PayoutFactory(
        organization_id=organization.organization_id,
        event_ended_at=timezone.now() - timedelta(days=1),
    )


@pytest.fixture
def eligible_payout(db, organization):
    """Eligible payout ready for the batch processor."""
    return PayoutFactory(
        organization_id=organization.organization_id,
        status=PayoutState.ELIGIBLE,
        eligible_at=timezone.now() - timedelta(hours=1),
    )


@pytest.fixture
def held_payout(db, organization):
    """Payout held for review because it exceeded the automatic limit."""
    return PayoutFactory(
        organization_id=organization.organization_id,
        status=PayoutState.HELD,
        requires_review=True,
        flags=["exceeds_auto_limit"],
    )


@pytest.fixture
def processing_payout(db, organization):
    """Payout claimed by the batch processor."""
    return PayoutFactory(
        organization_id=organization.organization_id,
        status=PayoutState.PROCESSING,
        eligible_at=timezone.now() - timedelta(hours=1),
        processed_at=timezone.now(),
    )


@pytest.fixture
def failed_payout(db, organization):
    """Payout whose first transfer attempt failed with a transient error."""
    return PayoutFactory(
        organization_id=organization.organization_id,
        status=PayoutState.FAILED,
        failed_attempts=1,
        last_error_code="STRIPE_API_UNAVAILABLE",
        last_error_retryable=True,
        failure_reason="Could not connect to Stripe. Please retry.",
        failed_at=timezone.now() - timedelta(minutes=30),
    )


@pytest.fixture
def completed_payout(db, organization):
    """Completed payout whose reserve hold period has elapsed."""
    return PayoutFactory(
        organization_id=organization.organization_id,
        completed=True,
        event_ended_at=timezone.now() - timedelta(days=40),
        reserve_hold_days=30,
    )


# =============================================================================
# Chargeback and Webhook Fixtures
# =============================================================================


@pytest.fixture
def open_chargeback(db, completed_payout):
    """Open $40.00 dispute against the completed payout's event."""
    return ChargebackFactory(
        organization_id=completed_payout.organization_id,
        event_id=completed_payout.event_id,
    )


@pytest.fixture
def webhook_event(db):
    """Pending webhook event for an unhandled event type."""
    return WebhookEventFactory(event_type="balance.available")


# =============================================================================
# Gateway Fixtures
# =============================================================================


@pytest.fixture
def gateway():
    """
    Gateway double whose transfers always succeed.

    Returns a new transfer id per call, like Stripe does for distinct
    idempotency keys.
    """
    mock = MagicMock()
    counter = {"n": 0}

    def create_transfer(amount_cents, currency, destination_account, idempotency_key, metadata):
        counter["n"] += 1
        return TransferResult(
            id=f"tr_mock_{counter['n']}",
            amount_cents=amount_cents,
            currency=currency,
            destination_account=destination_account,
            metadata=metadata,
        )

    mock.create_transfer.side_effect = create_transfer
    return mock
