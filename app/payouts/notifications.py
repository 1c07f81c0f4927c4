"""
Payout notifications.

Organizations are emailed when a payout completes, when it is held for
review and when its reserve is released. Notifications are
fire-and-forget: they are enqueued after the surrounding transaction
commits, and a failure to enqueue or send is logged and never affects
the payout.

Usage:
    from payouts.notifications import NotificationEvent, notify

    notify(NotificationEvent.PAYOUT_COMPLETED, payout)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models, transaction

if TYPE_CHECKING:
    from payouts.models import Payout

logger = logging.getLogger(__name__)


class NotificationEvent(models.TextChoices):
    PAYOUT_COMPLETED = "payout_completed", "Payout completed"
    PAYOUT_HELD = "payout_held", "Payout held for review"
    RESERVE_RELEASED = "reserve_released", "Reserve released"


SUBJECTS = {
    NotificationEvent.PAYOUT_COMPLETED.value: "Your payout for {event_name} has been sent",
    NotificationEvent.PAYOUT_HELD.value: "Your payout for {event_name} is under review",
    NotificationEvent.RESERVE_RELEASED.value: "Your reserve for {event_name} has been released",
}


def notify(event: str, payout: Payout) -> None:
    """
    Schedule a notification for a payout once the current transaction commits.

    Outside a transaction the task is enqueued immediately.
    """
    if not getattr(settings, "PAYOUT_NOTIFICATIONS_ENABLED", True):
        return

    payout_id = str(payout.pk)
    event = str(event)
    transaction.on_commit(lambda: _enqueue(event, payout_id))


def _enqueue(event: str, payout_id: str) -> None:
    from payouts.tasks import send_payout_notification

    try:
        send_payout_notification.delay(event, payout_id)
    except Exception:
        logger.exception(
            "Failed to enqueue payout notification",
            extra={"event": event, "payout_id": payout_id},
        )


def render_message(event: str, payout: Payout) -> tuple[str, str]:
    """Return (subject, body) for a payout notification."""
    event_name = payout.event_name or str(payout.event_id)
    subject = SUBJECTS[event].format(event_name=event_name)
    currency = payout.currency.upper()

    if event == NotificationEvent.PAYOUT_COMPLETED:
        body = (
            f"A transfer of {payout.net_payout_cents / 100:.2f} {currency} "
            f"for {event_name} has been sent to your payout account.\n"
            f"Transfer reference: {payout.transfer_reference}\n"
        )
        if payout.reserve_amount_cents and payout.reserve_release_at:
            body += (
                f"A reserve of {payout.reserve_amount_cents / 100:.2f} {currency} "
                f"is held until {payout.reserve_release_at:%Y-%m-%d}.\n"
            )
    elif event == NotificationEvent.PAYOUT_HELD:
        body = (
            f"Your payout of {payout.net_payout_cents / 100:.2f} {currency} "
            f"for {event_name} needs a manual review before it can be sent. "
            "No action is needed from you unless we contact you.\n"
        )
    else:
        body = (
            f"The reserve withheld from your payout for {event_name} "
            "has been released to your payout account.\n"
        )
    return subject, body
