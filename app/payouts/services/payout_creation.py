"""
Payout creation for ended auction events.

Called by the auction-event service (directly or through the
payouts.create_event_payout task) once an event ends. Creates exactly
one payout per (event, organization) with its full fee/reserve split and
records the withheld reserve in the reserve ledger.

Usage:
    from payouts.services.payout_creation import EventSnapshot, PayoutCreationService

    payout = PayoutCreationService.create_for_event(
        EventSnapshot(
            event_id=event.id,
            organization_id=event.organization_id,
            name=event.name,
            total_raised_cents=100_000,
            ended_at=event.ended_at,
            status="ended",
        ),
        now=timezone.now(),
    )
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from django.db import IntegrityError, transaction
from django.utils.dateparse import parse_datetime

from core.services import BaseService
from payouts.exceptions import PayoutValidationError
from payouts.ledger import ReserveLedgerService
from payouts.models import OrganizationTrustProfile, Payout
from payouts.state_machines import TrustLevel

from .fee_calculator import calculate_payout_split
from .policies import PolicyResolver

EVENT_STATUS_ENDED = "ended"


@dataclass(frozen=True)
class EventSnapshot:
    """What the engine needs to know about an ended auction event."""

    event_id: uuid.UUID
    organization_id: uuid.UUID
    name: str
    total_raised_cents: int
    ended_at: datetime | None
    status: str
    currency: str = "usd"
    region: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> EventSnapshot:
        """
        Build a snapshot from the JSON payload sent by the auction-event service.

        Raises:
            PayoutValidationError: Missing or malformed fields
        """
        try:
            ended_at = payload.get("ended_at")
            if isinstance(ended_at, str):
                ended_at = parse_datetime(ended_at)
            return cls(
                event_id=uuid.UUID(str(payload["event_id"])),
                organization_id=uuid.UUID(str(payload["organization_id"])),
                name=payload.get("name", ""),
                total_raised_cents=payload["total_raised_cents"],
                ended_at=ended_at,
                status=payload.get("status", ""),
                currency=payload.get("currency", "usd"),
                region=payload.get("region", ""),
            )
        except (KeyError, ValueError, TypeError) as exc:
            raise PayoutValidationError(
                "Malformed event payload",
                error_code="INVALID_EVENT_PAYLOAD",
                details={"error": str(exc)},
            ) from exc


class PayoutCreationService(BaseService):
    """Creates payouts for ended events."""

    @classmethod
    def create_for_event(cls, event: EventSnapshot, now: datetime) -> Payout:
        """
        Create the payout for an ended event, or return the existing one.

        Raises:
            PayoutValidationError: Event has not ended
            InvalidAmountError: total_raised_cents is not a positive integer
            PolicyMissingError: No fee or tier policy applies
        """
        logger = cls.get_logger()

        if event.status != EVENT_STATUS_ENDED or event.ended_at is None:
            raise PayoutValidationError(
                "Payouts can only be created for ended events",
                error_code="EVENT_NOT_ENDED",
                details={"event_id": str(event.event_id), "status": event.status},
            )
        if event.ended_at > now:
            raise PayoutValidationError(
                "Event end time is in the future",
                error_code="EVENT_NOT_ENDED",
                details={"event_id": str(event.event_id)},
            )

        existing = Payout.objects.filter(
            event_id=event.event_id, organization_id=event.organization_id
        ).first()
        if existing is not None:
            logger.info(
                "Payout already exists for event",
                extra={"payout_id": str(existing.id), "event_id": str(event.event_id)},
            )
            return existing

        trust_level = cls._trust_level(event.organization_id)
        currency = (event.currency or "usd").lower()
        policy = PolicyResolver.resolve(currency, event.region, trust_level)
        split = calculate_payout_split(event.total_raised_cents, policy)

        try:
            with transaction.atomic():
                payout = Payout.objects.create(
                    event_id=event.event_id,
                    organization_id=event.organization_id,
                    event_name=event.name or "",
                    event_ended_at=event.ended_at,
                    currency=currency,
                    gross_amount_cents=split.gross_amount_cents,
                    processor_fees_cents=split.processor_fees_cents,
                    platform_fee_cents=split.platform_fee_cents,
                    reserve_amount_cents=split.reserve_amount_cents,
                    net_payout_cents=split.net_payout_cents,
                    trust_level_at_creation=trust_level,
                    reserve_hold_days=policy.reserve_hold_days,
                    reserve_release_at=event.ended_at
                    + timedelta(days=policy.reserve_hold_days),
                    reserve_settled_at=now if split.reserve_amount_cents == 0 else None,
                )
                ReserveLedgerService.record_withheld(payout)
        except IntegrityError:
            # Concurrent creation for the same (event, organization)
            return Payout.objects.get(
                event_id=event.event_id, organization_id=event.organization_id
            )

        logger.info(
            "Payout created",
            extra={
                "payout_id": str(payout.id),
                "event_id": str(event.event_id),
                "organization_id": str(event.organization_id),
                "gross_amount_cents": split.gross_amount_cents,
                "reserve_amount_cents": split.reserve_amount_cents,
                "net_payout_cents": split.net_payout_cents,
                "trust_level": trust_level,
            },
        )
        return payout

    @staticmethod
    def _trust_level(organization_id: uuid.UUID) -> str:
        profile = OrganizationTrustProfile.objects.filter(
            organization_id=organization_id
        ).first()
        return profile.trust_level if profile else TrustLevel.NEW.value
