"""
Webhook event handlers for Stripe dispute events.

Handlers are looked up by event type in a registry and return a
ServiceResult. Unknown event types are acknowledged without action.

Handled events:
    charge.dispute.created          Record a chargeback
    charge.dispute.closed           Resolve it (won / lost / closed)
    charge.dispute.funds_withdrawn  Acknowledged; the loss is applied on close

Usage:
    from payouts.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable

from django.utils import timezone

from core.services import ServiceResult
from payouts.adapters import StripeAdapter
from payouts.exceptions import PayoutError, StripeError
from payouts.models import Chargeback, WebhookEvent
from payouts.services.chargebacks import ChargebackService
from payouts.state_machines import ChargebackStatus, ResolutionSource

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """Decorator to register a webhook event handler."""

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to the appropriate handler.

    If no handler is registered, logs and returns success so that
    unrelated Stripe events are not retried.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )
    return handler(webhook_event)


# =============================================================================
# Helpers
# =============================================================================


def _parse_uuid(value: Any) -> uuid.UUID | None:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _dispute_context(dispute: dict[str, Any]) -> dict[str, Any]:
    """
    Organization and event ids for a dispute.

    Read from the dispute's metadata, falling back to the metadata of
    the PaymentIntent the dispute was raised against.
    """
    metadata = dict(dispute.get("metadata") or {})
    payment_intent_id = dispute.get("payment_intent") or ""

    if not metadata.get("organization_id") and payment_intent_id:
        try:
            intent = StripeAdapter.retrieve_payment_intent(payment_intent_id)
            metadata = {**intent.metadata, **metadata}
        except StripeError as e:
            logger.warning(
                "Could not load PaymentIntent metadata for dispute",
                extra={
                    "dispute_id": dispute.get("id"),
                    "payment_intent_id": payment_intent_id,
                    "error_code": e.error_code,
                },
            )

    return {
        "organization_id": _parse_uuid(metadata.get("organization_id")),
        "event_id": _parse_uuid(metadata.get("event_id")),
        "payment_intent_id": payment_intent_id,
    }


def _record_from_dispute(
    webhook_event: WebhookEvent, dispute: dict[str, Any]
) -> ServiceResult[Chargeback]:
    context = _dispute_context(dispute)
    if context["organization_id"] is None:
        logger.error(
            "Dispute has no organization_id metadata",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "dispute_id": dispute.get("id"),
            },
        )
        return ServiceResult.failure(
            "Dispute is missing organization metadata",
            error_code="MISSING_ORGANIZATION",
        )

    try:
        chargeback, _ = ChargebackService.record_dispute(
            gateway_dispute_id=dispute["id"],
            organization_id=context["organization_id"],
            event_id=context["event_id"],
            amount_cents=dispute.get("amount"),
            currency=dispute.get("currency") or "usd",
            reason=dispute.get("reason") or "",
            payment_intent_id=context["payment_intent_id"],
        )
    except PayoutError as e:
        return ServiceResult.from_exception(e)

    return ServiceResult.success(chargeback)


# =============================================================================
# Dispute Handlers
# =============================================================================


@register_handler("charge.dispute.created")
def handle_dispute_created(webhook_event: WebhookEvent) -> ServiceResult:
    dispute = webhook_event.get_object()
    if not dispute.get("id"):
        return ServiceResult.failure(
            "Could not extract dispute id from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )
    return _record_from_dispute(webhook_event, dispute)


@register_handler("charge.dispute.closed")
def handle_dispute_closed(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Resolve a chargeback from the dispute's final status.

    Stripe "won" and "lost" map directly; any other final status
    (e.g. warning_closed) closes the chargeback.
    """
    dispute = webhook_event.get_object()
    dispute_id = dispute.get("id")
    if not dispute_id:
        return ServiceResult.failure(
            "Could not extract dispute id from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    if not Chargeback.objects.filter(gateway_dispute_id=dispute_id).exists():
        recorded = _record_from_dispute(webhook_event, dispute)
        if not recorded:
            return recorded

    stripe_status = dispute.get("status")
    if stripe_status == "won":
        outcome = ChargebackStatus.WON
    elif stripe_status == "lost":
        outcome = ChargebackStatus.LOST
    else:
        outcome = ChargebackStatus.CLOSED

    try:
        chargeback, changed = ChargebackService.resolve_dispute(
            outcome=outcome,
            now=timezone.now(),
            gateway_dispute_id=dispute_id,
            source=ResolutionSource.GATEWAY,
        )
    except PayoutError as e:
        logger.warning(
            "Could not resolve chargeback from webhook",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "dispute_id": dispute_id,
                "error_code": e.error_code,
            },
        )
        return ServiceResult.from_exception(e)

    return ServiceResult.success({"chargeback_id": str(chargeback.id), "changed": changed})


@register_handler("charge.dispute.funds_withdrawn")
def handle_dispute_funds_withdrawn(webhook_event: WebhookEvent) -> ServiceResult:
    logger.info(
        "Dispute funds withdrawn",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "dispute_id": webhook_event.get_object_id(),
        },
    )
    return ServiceResult.success(None)
