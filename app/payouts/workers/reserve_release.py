"""
Reserve release engine.

Settles the reserve of completed payouts once their hold period has
elapsed (reserve_release_at = event_ended_at + reserve_hold_days):

    1. Forfeit reserve to lost chargebacks not yet deducted (oldest first)
    2. Defer while an open chargeback exists for the organization/event
    3. Transfer what remains to the organization; record it as released
       only after the gateway confirmed the transfer
    4. Stamp reserve_settled_at once nothing remains

Each payout is processed in isolation; a gateway error leaves the ledger
untouched so the next run retries.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from django.utils import timezone

from payouts.adapters import StripeAdapter
from payouts.exceptions import ChargebackNotFoundError, GatewayError
from payouts.ledger import ReserveLedgerService
from payouts.models import Chargeback, OrganizationTrustProfile, Payout
from payouts.notifications import NotificationEvent, notify
from payouts.services.chargebacks import ChargebackService
from payouts.state_machines import ChargebackStatus, PayoutState

logger = logging.getLogger(__name__)

UNCOMPLETED_STATES = (
    PayoutState.PENDING,
    PayoutState.ELIGIBLE,
    PayoutState.PROCESSING,
    PayoutState.HELD,
    PayoutState.FAILED,
)


@dataclass
class ReserveReleaseResult:
    """
    Counts for one reserve release run.

    Attributes:
        released: Payouts whose remaining reserve was transferred
        forfeited: Payouts that had reserve forfeited to chargebacks
        errors: Gateway failures and unexpected per-record exceptions
        deferred: Payouts waiting on an open chargeback or payout account
    """

    released: int = 0
    forfeited: int = 0
    errors: int = 0
    deferred: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def process_reserve_releases(
    now: datetime | None = None,
    gateway: Any = None,
) -> ReserveReleaseResult:
    """
    Release or forfeit every reserve whose hold period has elapsed.

    Args:
        now: Processing time (defaults to timezone.now())
        gateway: Object exposing create_transfer(); defaults to StripeAdapter
    """
    now = now or timezone.now()
    gateway = gateway or StripeAdapter
    result = ReserveReleaseResult()

    payout_ids = list(
        Payout.objects.reserve_release_due(now)
        .order_by("reserve_release_at")
        .values_list("id", flat=True)
    )

    logger.info("Starting reserve release run", extra={"due_count": len(payout_ids)})

    for payout_id in payout_ids:
        try:
            release_reserve(payout_id, now=now, gateway=gateway, result=result)
        except Exception:
            logger.exception(
                "Unexpected error releasing reserve",
                extra={"payout_id": str(payout_id)},
            )
            result.errors += 1

    logger.info("Reserve release run complete", extra=result.to_dict())
    return result


def release_reserve(
    payout_id: uuid.UUID,
    now: datetime,
    gateway: Any,
    result: ReserveReleaseResult,
) -> None:
    """Settle one payout's reserve and update the run counts."""
    payout = Payout.objects.get(pk=payout_id)

    if ReserveLedgerService.apply_lost_chargebacks(payout):
        result.forfeited += 1

    if ChargebackService.open_chargeback_count(payout.organization_id, payout.event_id):
        logger.info(
            "Reserve release deferred: open chargeback",
            extra={"payout_id": str(payout_id)},
        )
        result.deferred += 1
        return

    remaining = ReserveLedgerService.remaining_reserve(payout)
    if remaining > 0:
        profile = OrganizationTrustProfile.objects.filter(
            organization_id=payout.organization_id
        ).first()
        if profile is None or not profile.can_receive_transfers:
            logger.warning(
                "Reserve release deferred: payout account not ready",
                extra={"payout_id": str(payout_id)},
            )
            result.deferred += 1
            return

        try:
            transfer = gateway.create_transfer(
                amount_cents=remaining,
                currency=payout.currency,
                destination_account=profile.stripe_account_id,
                idempotency_key=f"reserve_release:{payout.id}:{remaining}",
                metadata={
                    "payout_id": str(payout.id),
                    "event_id": str(payout.event_id),
                    "type": "reserve_release",
                },
            )
        except GatewayError as e:
            logger.warning(
                "Reserve release transfer failed",
                extra={
                    "payout_id": str(payout_id),
                    "error_code": e.error_code,
                    "retryable": e.is_retryable,
                },
            )
            result.errors += 1
            return

        ReserveLedgerService.record_release(
            payout, amount_cents=remaining, transfer_reference=transfer.id
        )
        result.released += 1
        notify(NotificationEvent.RESERVE_RELEASED, payout)

    ReserveLedgerService.settle_if_disposed(payout, now)


def apply_chargeback_to_reserves(chargeback_id: uuid.UUID, now: datetime | None = None) -> dict:
    """
    Forfeit a lost chargeback against the organization's unsettled reserves.

    Payouts tied to the chargeback's event are used (any payout of the
    organization when the chargeback has no event), oldest first, until
    the chargeback is covered. No reserve is released here.

    When no payout of the organization still holds reserve that could
    cover the rest, the uncovered amount is recorded as the chargeback's
    shortfall.

    Raises:
        ChargebackNotFoundError: Unknown chargeback id
    """
    now = now or timezone.now()
    try:
        chargeback = Chargeback.objects.get(pk=chargeback_id)
    except Chargeback.DoesNotExist:
        raise ChargebackNotFoundError(
            "Chargeback not found",
            details={"chargeback_id": str(chargeback_id)},
        )

    if chargeback.status != ChargebackStatus.LOST:
        return {"forfeited_cents": 0, "payouts": 0, "outstanding_cents": 0}

    payouts = Payout.objects.filter(
        organization_id=chargeback.organization_id,
        status=PayoutState.COMPLETED,
        reserve_amount_cents__gt=0,
        reserve_settled_at__isnull=True,
    ).order_by("completed_at", "created_at")
    if chargeback.event_id is not None:
        payouts = payouts.filter(event_id=chargeback.event_id)

    forfeited_cents = 0
    touched = 0
    for payout in payouts:
        if chargeback.outstanding_cents == 0:
            break
        entries = ReserveLedgerService.apply_lost_chargebacks(payout, chargebacks=[chargeback])
        if entries:
            touched += 1
            forfeited_cents += sum(entry.amount_cents for entry in entries)
            ReserveLedgerService.settle_if_disposed(payout, now)
        chargeback.refresh_from_db(fields=["recovered_cents", "shortfall_cents"])

    if chargeback.outstanding_cents > 0 and not _reserve_pending(chargeback):
        ReserveLedgerService.record_shortfall(chargeback)
        chargeback.refresh_from_db(fields=["shortfall_cents", "deducted_from_reserve"])

    logger.info(
        "Chargeback applied to reserves",
        extra={
            "chargeback_id": str(chargeback_id),
            "forfeited_cents": forfeited_cents,
            "payouts": touched,
            "outstanding_cents": chargeback.outstanding_cents,
        },
    )
    return {
        "forfeited_cents": forfeited_cents,
        "payouts": touched,
        "outstanding_cents": chargeback.outstanding_cents,
    }


def _reserve_pending(chargeback: Chargeback) -> bool:
    """Whether a payout not yet completed may still withhold reserve for it."""
    payouts = Payout.objects.filter(
        organization_id=chargeback.organization_id,
        status__in=UNCOMPLETED_STATES,
        reserve_amount_cents__gt=0,
        reserve_settled_at__isnull=True,
    )
    if chargeback.event_id is not None:
        payouts = payouts.filter(event_id=chargeback.event_id)
    return payouts.exists()
