"""
Celery tasks for the payout engine.

Periodic (celery-beat, installed by migration 0003):
- evaluate_pending_payouts: Gate sweep, every 15 minutes
- process_eligible_payouts: Batch transfer run, every 30 minutes
- process_reserve_releases: Reserve release run, hourly
- retry_failed_webhooks: Requeue failed/stale webhook events, every 10 minutes

On demand:
- create_event_payout: Create the payout for an ended event
- process_webhook_event: Process one stored Stripe webhook event
- apply_chargeback_to_reserves: Forfeit a lost chargeback from reserves
- send_payout_notification: Email an organization about its payout

Usage:
    from payouts.tasks import create_event_payout

    create_event_payout.delay({
        "event_id": "...",
        "organization_id": "...",
        "name": "Spring Gala",
        "total_raised_cents": 100000,
        "ended_at": "2026-03-01T20:00:00Z",
        "status": "ended",
    })
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
from django.db import models, transaction
from django.utils import timezone

from payouts.exceptions import PayoutError
from payouts.models import OrganizationTrustProfile, Payout, WebhookEvent
from payouts.notifications import render_message
from payouts.services.eligibility import EligibilityService
from payouts.services.payout_creation import EventSnapshot, PayoutCreationService
from payouts.state_machines import WebhookEventStatus
from payouts.workers import batch_processor, reserve_release

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_WEBHOOK_RETRIES = 5
STALE_PENDING_WEBHOOK_MINUTES = 10


# =============================================================================
# Periodic Tasks
# =============================================================================


@shared_task(name="payouts.evaluate_pending_payouts")
def evaluate_pending_payouts() -> dict:
    """Move matured pending payouts to eligible or held; re-gate failed ones."""
    counts = EligibilityService.sweep(now=timezone.now())
    logger.info("Eligibility sweep complete", extra=counts)
    return counts


@shared_task(name="payouts.process_eligible_payouts")
def process_eligible_payouts() -> dict:
    """Transfer every eligible payout through the gateway."""
    return batch_processor.process_eligible_payouts(now=timezone.now()).to_dict()


@shared_task(name="payouts.process_reserve_releases")
def process_reserve_releases() -> dict:
    """Release or forfeit reserves whose hold period has elapsed."""
    return reserve_release.process_reserve_releases(now=timezone.now()).to_dict()


# =============================================================================
# Payout Creation
# =============================================================================


@shared_task(name="payouts.create_event_payout")
def create_event_payout(payload: dict) -> dict:
    """
    Create the payout for an ended auction event.

    Rejected payloads (event not ended, bad amount, no policy) are logged
    and returned, not retried.
    """
    try:
        event = EventSnapshot.from_payload(payload)
        payout = PayoutCreationService.create_for_event(event, now=timezone.now())
    except PayoutError as e:
        logger.warning(
            "Payout creation rejected",
            extra={"event_id": payload.get("event_id"), "error_code": e.error_code},
        )
        return {"status": "rejected", "error_code": e.error_code, "error": e.message}

    return {
        "status": "ok",
        "payout_id": str(payout.id),
        "payout_status": str(payout.status),
    }


# =============================================================================
# Chargebacks
# =============================================================================


@shared_task(
    bind=True,
    name="payouts.apply_chargeback_to_reserves",
    autoretry_for=(Exception,),
    dont_autoretry_for=(PayoutError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def apply_chargeback_to_reserves(self, chargeback_id: str) -> dict:
    """Deduct a lost chargeback from the organization's unsettled reserves."""
    return reserve_release.apply_chargeback_to_reserves(UUID(str(chargeback_id)))


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    name="payouts.process_webhook_event",
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a stored Stripe webhook event.

    Already processed events are skipped. Handler failures mark the event
    failed; unexpected exceptions also re-raise so Celery retries.
    """
    from payouts.webhooks.handlers import dispatch_webhook

    webhook_event_id = UUID(str(webhook_event_id))

    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.is_processed:
        return {"status": "already_processed", "webhook_event_id": str(webhook_event_id)}

    webhook_event.mark_processing()
    webhook_event.save()

    try:
        with transaction.atomic():
            result = dispatch_webhook(webhook_event)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {str(e)}"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()
        logger.exception(
            "Webhook processing failed with exception",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
            },
        )
        raise

    if not result.success:
        error_msg = result.error or "Handler returned failure"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()
        logger.warning(
            f"Webhook handler failed: {error_msg}",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
                "error_code": result.error_code,
            },
        )
        return {
            "status": "handler_failed",
            "webhook_event_id": str(webhook_event_id),
            "error": error_msg,
        }

    webhook_event.mark_processed(now=timezone.now())
    webhook_event.save()
    logger.info(
        "Webhook processed successfully",
        extra={
            "webhook_event_id": str(webhook_event_id),
            "stripe_event_id": webhook_event.stripe_event_id,
        },
    )
    return {
        "status": "processed",
        "webhook_event_id": str(webhook_event_id),
        "stripe_event_id": webhook_event.stripe_event_id,
    }


@shared_task(name="payouts.retry_failed_webhooks")
def retry_failed_webhooks() -> dict:
    """
    Requeue failed webhook events under the retry limit, and pending
    events that were stored but never picked up.
    """
    stale_cutoff = timezone.now() - timedelta(minutes=STALE_PENDING_WEBHOOK_MINUTES)
    webhooks = WebhookEvent.objects.filter(
        models.Q(status=WebhookEventStatus.FAILED, retry_count__lt=MAX_WEBHOOK_RETRIES)
        | models.Q(status=WebhookEventStatus.PENDING, created_at__lt=stale_cutoff)
    ).order_by("created_at")[:100]

    queued_count = 0
    for webhook in webhooks:
        try:
            process_webhook_event.delay(str(webhook.id))
            queued_count += 1
        except Exception as e:
            logger.error(
                f"Failed to queue webhook for retry: {e}",
                extra={"webhook_event_id": str(webhook.id)},
            )

    logger.info(
        f"Queued {queued_count} webhooks for retry",
        extra={"queued_count": queued_count},
    )
    return {"queued_count": queued_count}


# =============================================================================
# Notifications
# =============================================================================


@shared_task(name="payouts.send_payout_notification")
def send_payout_notification(event: str, payout_id: str) -> bool:
    """
    Email the organization about a payout event.

    Returns:
        True if sent, False if skipped (unknown payout, no contact email)
    """
    payout = Payout.objects.filter(pk=payout_id).first()
    if payout is None:
        logger.warning("Notification for unknown payout", extra={"payout_id": payout_id})
        return False

    profile = OrganizationTrustProfile.objects.filter(
        organization_id=payout.organization_id
    ).first()
    if profile is None or not profile.contact_email:
        logger.info(
            "Payout notification skipped: no contact email",
            extra={"payout_id": payout_id, "event": event},
        )
        return False

    subject, body = render_message(event, payout)
    try:
        send_mail(
            subject,
            body,
            settings.DEFAULT_FROM_EMAIL,
            [profile.contact_email],
        )
    except Exception:
        logger.exception(
            "Payout notification failed",
            extra={"payout_id": payout_id, "event": event},
        )
        return False

    logger.info(
        "Payout notification sent",
        extra={"payout_id": payout_id, "event": event},
    )
    return True
