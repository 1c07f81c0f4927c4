"""
Pytest fixtures for webhook tests.

Provides Stripe dispute payloads and WebhookEvent rows in each
processing state.
"""

import uuid

import pytest
from django.test import RequestFactory
from django.utils import timezone

from payouts.state_machines import WebhookEventStatus
from payouts.tests.factories import WebhookEventFactory


def dispute_object(
    dispute_id: str = "dp_test_123",
    amount: int = 4000,
    status: str = "needs_response",
    organization_id=None,
    event_id=None,
    payment_intent: str = "pi_test_123",
) -> dict:
    """Stripe Dispute object as delivered in webhook payloads."""
    metadata = {}
    if organization_id is not None:
        metadata["organization_id"] = str(organization_id)
    if event_id is not None:
        metadata["event_id"] = str(event_id)
    return {
        "id": dispute_id,
        "object": "dispute",
        "amount": amount,
        "currency": "usd",
        "reason": "fraudulent",
        "status": status,
        "payment_intent": payment_intent,
        "metadata": metadata,
    }


def dispute_event(event_type: str, dispute: dict, **kwargs):
    """Stored WebhookEvent wrapping a dispute object."""
    stripe_event_id = f"evt_{uuid.uuid4().hex[:16]}"
    return WebhookEventFactory(
        stripe_event_id=stripe_event_id,
        event_type=event_type,
        payload={
            "id": stripe_event_id,
            "type": event_type,
            "data": {"object": dispute},
        },
        **kwargs,
    )


# =============================================================================
# Request Fixtures
# =============================================================================


@pytest.fixture
def rf():
    """Request factory for creating test requests."""
    return RequestFactory()


# =============================================================================
# Webhook Event Fixtures
# =============================================================================


@pytest.fixture
def dispute_ids():
    """Organization and event ids carried in dispute metadata."""
    return {"organization_id": uuid.uuid4(), "event_id": uuid.uuid4()}


@pytest.fixture
def dispute_created_event(db, dispute_ids):
    """Pending charge.dispute.created event with full metadata."""
    return dispute_event(
        "charge.dispute.created",
        dispute_object(**dispute_ids),
    )


@pytest.fixture
def processed_webhook_event(db):
    """Webhook event that has already been processed."""
    return WebhookEventFactory(
        status=WebhookEventStatus.PROCESSED,
        processed_at=timezone.now(),
    )


@pytest.fixture
def failed_webhook_event(db):
    """Webhook event whose last processing attempt failed."""
    return WebhookEventFactory(
        status=WebhookEventStatus.FAILED,
        retry_count=1,
        error_message="RuntimeError: database unavailable",
    )
