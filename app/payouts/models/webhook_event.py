"""
WebhookEvent model for Stripe webhook event tracking.

Every webhook received from Stripe is stored before processing. The
unique stripe_event_id makes redelivered events detectable, and the
stored payload lets the Celery task retry a failed event later.
"""

from __future__ import annotations

from datetime import datetime

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payouts.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Stripe webhook event stored for idempotent processing.

    Processing Flow:
        1. View verifies the Stripe signature
        2. get_or_create by stripe_event_id
        3. Already PROCESSED -> acknowledged without reprocessing
        4. Task marks PROCESSING, dispatches to the registered handler
        5. Task marks PROCESSED or FAILED (and retries)
    """

    stripe_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Event ID (evt_xxx)",
    )
    event_type = models.CharField(max_length=100, db_index=True)
    payload = models.JSONField(help_text="Full webhook payload from Stripe")
    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    error_message = models.TextField(blank=True, default="")
    retry_count = models.PositiveSmallIntegerField(default=0)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(
                fields=["status", "created_at"], name="payouts_web_status_3d9c14_idx"
            ),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.stripe_event_id}, {self.event_type})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def is_failed(self) -> bool:
        return self.status == WebhookEventStatus.FAILED

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_processing(self) -> None:
        """
        Mark event as being processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self, now: datetime) -> None:
        """Note: Does not save - caller must save after calling."""
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = now
        self.error_message = ""

    def mark_failed(self, error_message: str) -> None:
        """Note: Does not save - caller must save after calling."""
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_object(self) -> dict:
        """The event's data.object (the dispute for charge.dispute.* events)."""
        try:
            return self.payload.get("data", {}).get("object", {}) or {}
        except (AttributeError, TypeError):
            return {}

    def get_object_id(self) -> str | None:
        return self.get_object().get("id")
