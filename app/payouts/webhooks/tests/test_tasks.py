"""
Tests for the webhook Celery tasks.

Tests cover:
- process_webhook_event task
- retry_failed_webhooks task
"""

from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.utils import timezone

from core.services import ServiceResult
from payouts.models import Chargeback, WebhookEvent
from payouts.state_machines import WebhookEventStatus
from payouts.tasks import (
    MAX_WEBHOOK_RETRIES,
    process_webhook_event,
    retry_failed_webhooks,
)
from payouts.tests.factories import WebhookEventFactory

DISPATCH_PATH = "payouts.webhooks.handlers.dispatch_webhook"


# =============================================================================
# process_webhook_event Tests
# =============================================================================


class TestProcessWebhookEvent:
    """Tests for the process_webhook_event task."""

    def test_process_pending_event_success(self, db, webhook_event):
        """Should process pending event successfully."""
        with patch(DISPATCH_PATH) as mock_dispatch:
            mock_dispatch.return_value = ServiceResult.success(None)

            result = process_webhook_event(str(webhook_event.id))

        assert result["status"] == "processed"
        assert result["stripe_event_id"] == webhook_event.stripe_event_id

        webhook_event.refresh_from_db()
        assert webhook_event.status == WebhookEventStatus.PROCESSED
        assert webhook_event.processed_at is not None
        assert webhook_event.retry_count == 1  # Incremented during processing

    def test_dispute_event_end_to_end(self, db, dispute_created_event):
        """Should record the chargeback through the real handler."""
        result = process_webhook_event(str(dispute_created_event.id))

        assert result["status"] == "processed"
        assert Chargeback.objects.filter(gateway_dispute_id="dp_test_123").exists()

    def test_skip_already_processed_event(self, db, processed_webhook_event):
        """Should skip already processed events."""
        with patch(DISPATCH_PATH) as mock_dispatch:
            result = process_webhook_event(str(processed_webhook_event.id))

        assert result["status"] == "already_processed"
        mock_dispatch.assert_not_called()

    def test_event_not_found(self, db):
        """Should handle missing webhook event."""
        result = process_webhook_event(str(uuid4()))

        assert result["status"] == "not_found"

    def test_handler_failure_marks_event_failed(self, db, webhook_event):
        """Should mark event as failed if handler returns failure."""
        with patch(DISPATCH_PATH) as mock_dispatch:
            mock_dispatch.return_value = ServiceResult.failure(
                "Dispute is missing organization metadata",
                error_code="MISSING_ORGANIZATION",
            )

            result = process_webhook_event(str(webhook_event.id))

        assert result["status"] == "handler_failed"
        assert "organization" in result["error"]

        webhook_event.refresh_from_db()
        assert webhook_event.status == WebhookEventStatus.FAILED
        assert "organization" in webhook_event.error_message

    def test_exception_marks_event_failed_and_raises(self, db, webhook_event):
        """Should mark event failed and re-raise for Celery retry."""
        with patch(DISPATCH_PATH) as mock_dispatch:
            mock_dispatch.side_effect = Exception("Database connection lost")

            with pytest.raises(Exception, match="Database connection lost"):
                process_webhook_event(str(webhook_event.id))

        webhook_event.refresh_from_db()
        assert webhook_event.status == WebhookEventStatus.FAILED
        assert "Database connection lost" in webhook_event.error_message

    def test_failed_event_reprocessed(self, db, failed_webhook_event):
        """Should process a failed event again and count the attempt."""
        with patch(DISPATCH_PATH) as mock_dispatch:
            mock_dispatch.return_value = ServiceResult.success(None)

            process_webhook_event(str(failed_webhook_event.id))

        failed_webhook_event.refresh_from_db()
        assert failed_webhook_event.status == WebhookEventStatus.PROCESSED
        assert failed_webhook_event.retry_count == 2
        assert failed_webhook_event.error_message == ""


# =============================================================================
# retry_failed_webhooks Tests
# =============================================================================


class TestRetryFailedWebhooks:
    """Tests for the retry_failed_webhooks task."""

    def test_queues_failed_webhooks_for_retry(self, db, failed_webhook_event):
        """Should queue failed webhooks under the retry limit."""
        with patch("payouts.tasks.process_webhook_event.delay") as mock_task:
            result = retry_failed_webhooks()

        assert result["queued_count"] == 1
        mock_task.assert_called_once_with(str(failed_webhook_event.id))

    def test_skips_webhooks_at_max_retries(self, db):
        """Should not queue webhooks that exhausted their retries."""
        WebhookEventFactory(
            status=WebhookEventStatus.FAILED, retry_count=MAX_WEBHOOK_RETRIES
        )

        with patch("payouts.tasks.process_webhook_event.delay") as mock_task:
            result = retry_failed_webhooks()

        assert result["queued_count"] == 0
        mock_task.assert_not_called()

    def test_queues_stale_pending_webhooks(self, db):
        """Should queue pending events that were never picked up."""
        stale = WebhookEventFactory()
        WebhookEvent.objects.filter(pk=stale.pk).update(
            created_at=timezone.now() - timedelta(minutes=30)
        )
        WebhookEventFactory()

        with patch("payouts.tasks.process_webhook_event.delay") as mock_task:
            result = retry_failed_webhooks()

        assert result["queued_count"] == 1
        mock_task.assert_called_once_with(str(stale.id))

    def test_ignores_processed_webhooks(self, db, processed_webhook_event):
        """Should never requeue processed events."""
        with patch("payouts.tasks.process_webhook_event.delay") as mock_task:
            retry_failed_webhooks()

        mock_task.assert_not_called()

    def test_handles_queueing_error(self, db, failed_webhook_event):
        """Should keep going when the broker refuses a task."""
        with patch("payouts.tasks.process_webhook_event.delay") as mock_task:
            mock_task.side_effect = Exception("Broker unavailable")

            result = retry_failed_webhooks()

        assert result["queued_count"] == 0
