"""
Batch processor for eligible payouts.

Drains eligible payouts through the payment gateway:

    1. Recover claims stuck in PROCESSING longer than PAYOUT_STALLED_CLAIM_MINUTES
    2. Re-gate each eligible payout (new risk demotes it to HELD)
    3. Check the organization can receive transfers
    4. Claim it with a compare-and-set UPDATE (eligible -> processing)
    5. Call the gateway outside any transaction
    6. Record COMPLETED with the transfer id, or FAILED with the error

Every payout is processed in isolation: an exception is logged, counted
in `errors` and never stops the run. A lost claim is counted in
`skipped` only.

Usage:
    from payouts.workers.batch_processor import process_eligible_payouts

    result = process_eligible_payouts(now=timezone.now())
    result.to_dict()  # {"processed": 3, "held": 1, "errors": 0, "skipped": 0, ...}
"""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any

from django.conf import settings
from django.db import connection, transaction
from django.utils import timezone

from payouts.adapters import IdempotencyKeyGenerator, StripeAdapter
from payouts.exceptions import ConcurrencyConflictError, GatewayError
from payouts.models import OrganizationTrustProfile, Payout
from payouts.notifications import NotificationEvent, notify
from payouts.services.eligibility import EligibilityGate, EligibilityService
from payouts.state_machines import PayoutState, RiskFlag
from payouts.state_machines.guards import legal_transition

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

TRANSFER_OPERATION = "payout_transfer"

STALLED_CLAIM_ERROR_CODE = "STALLED_CLAIM"

OUTCOME_PROCESSED = "processed"
OUTCOME_HELD = "held"
OUTCOME_ERROR = "error"
OUTCOME_SKIPPED = "skipped"


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class PayoutBatchResult:
    """
    Counts for one batch run.

    Attributes:
        processed: Payouts completed with a gateway transfer
        held: Payouts demoted to HELD (new risk or payout account not ready)
        errors: Gateway failures and unexpected per-record exceptions
        skipped: Payouts another worker claimed first
        stalled_recovered: Stalled PROCESSING claims moved to FAILED
    """

    processed: int = 0
    held: int = 0
    errors: int = 0
    skipped: int = 0
    stalled_recovered: int = 0

    def record(self, outcome: str) -> None:
        if outcome == OUTCOME_PROCESSED:
            self.processed += 1
        elif outcome == OUTCOME_HELD:
            self.held += 1
        elif outcome == OUTCOME_SKIPPED:
            self.skipped += 1
        elif outcome == OUTCOME_ERROR:
            self.errors += 1

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


# =============================================================================
# Entry Point
# =============================================================================


def process_eligible_payouts(
    now: datetime | None = None,
    gateway: Any = None,
    max_workers: int | None = None,
) -> PayoutBatchResult:
    """
    Process every eligible payout once.

    Args:
        now: Processing time (defaults to timezone.now())
        gateway: Object exposing create_transfer(); defaults to StripeAdapter
        max_workers: Worker threads; defaults to PAYOUT_BATCH_MAX_WORKERS.
            1 processes payouts sequentially.
    """
    now = now or timezone.now()
    gateway = gateway or StripeAdapter
    if max_workers is None:
        max_workers = getattr(settings, "PAYOUT_BATCH_MAX_WORKERS", 1)
    gate = EligibilityGate.from_settings()

    result = PayoutBatchResult()
    result.stalled_recovered = recover_stalled_claims(now)

    payout_ids = list(
        Payout.objects.filter(status=PayoutState.ELIGIBLE)
        .order_by("eligible_at", "created_at")
        .values_list("id", flat=True)
    )

    logger.info(
        "Starting payout batch",
        extra={"eligible_count": len(payout_ids), "max_workers": max_workers},
    )

    if max_workers > 1 and len(payout_ids) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            outcomes = list(
                executor.map(
                    lambda payout_id: _process_in_thread(payout_id, now, gateway, gate),
                    payout_ids,
                )
            )
    else:
        outcomes = [
            _process_safely(payout_id, now, gateway, gate) for payout_id in payout_ids
        ]

    for outcome in outcomes:
        result.record(outcome)

    logger.info("Payout batch complete", extra=result.to_dict())
    return result


# =============================================================================
# Stalled Claims
# =============================================================================


def recover_stalled_claims(now: datetime) -> int:
    """
    Fail payouts stuck in PROCESSING since before the stall cutoff.

    The gateway outcome of a stalled claim is unknown. The retry reuses
    the same idempotency key, so the gateway returns the original
    transfer if one was made.
    """
    minutes = getattr(settings, "PAYOUT_STALLED_CLAIM_MINUTES", 30)
    cutoff = now - timedelta(minutes=minutes)

    stalled_ids = list(
        Payout.objects.filter(
            status=PayoutState.PROCESSING, processed_at__lt=cutoff
        ).values_list("id", flat=True)
    )

    recovered = 0
    for payout_id in stalled_ids:
        try:
            with transaction.atomic():
                payout = Payout.objects.select_for_update().get(pk=payout_id)
                if payout.status != PayoutState.PROCESSING:
                    continue
                with legal_transition(payout, "fail"):
                    payout.fail(
                        reason=f"Claim stalled for more than {minutes} minutes",
                        error_code=STALLED_CLAIM_ERROR_CODE,
                        retryable=True,
                        now=now,
                    )
                payout.save()
            recovered += 1
            logger.warning(
                "Recovered stalled payout claim",
                extra={"payout_id": str(payout_id)},
            )
        except Exception:
            logger.exception(
                "Error recovering stalled payout claim",
                extra={"payout_id": str(payout_id)},
            )

    return recovered


# =============================================================================
# Per-Payout Processing
# =============================================================================


def _process_in_thread(payout_id, now, gateway, gate) -> str:
    try:
        return _process_safely(payout_id, now, gateway, gate)
    finally:
        connection.close()


def _process_safely(payout_id, now, gateway, gate) -> str:
    try:
        return process_payout(payout_id, now=now, gateway=gateway, gate=gate)
    except Exception:
        logger.exception(
            "Unexpected error processing payout",
            extra={"payout_id": str(payout_id)},
        )
        return OUTCOME_ERROR


def process_payout(
    payout_id: uuid.UUID,
    now: datetime,
    gateway: Any = StripeAdapter,
    gate: EligibilityGate | None = None,
) -> str:
    """
    Run one eligible payout through gate, claim and transfer.

    Returns:
        One of "processed", "held", "error", "skipped"
    """
    decision = EligibilityService.evaluate_payout(payout_id, now=now, gate=gate)
    if decision.target == PayoutState.HELD:
        return OUTCOME_HELD

    payout = Payout.objects.get(pk=payout_id)
    if payout.status != PayoutState.ELIGIBLE:
        return OUTCOME_SKIPPED

    profile = OrganizationTrustProfile.objects.filter(
        organization_id=payout.organization_id
    ).first()
    if profile is None or not profile.can_receive_transfers:
        return _hold_for_payout_account(payout_id)

    try:
        _claim(payout, now)
    except ConcurrencyConflictError:
        logger.info(
            "Payout claimed by another worker",
            extra={"payout_id": str(payout_id)},
        )
        return OUTCOME_SKIPPED

    idempotency_key = IdempotencyKeyGenerator.generate(TRANSFER_OPERATION, payout.id)
    try:
        transfer = gateway.create_transfer(
            amount_cents=payout.net_payout_cents,
            currency=payout.currency,
            destination_account=profile.stripe_account_id,
            idempotency_key=idempotency_key,
            metadata={
                "payout_id": str(payout.id),
                "event_id": str(payout.event_id),
                "organization_id": str(payout.organization_id),
            },
        )
    except GatewayError as e:
        _record_failure(payout_id, e, now)
        return OUTCOME_ERROR

    with transaction.atomic():
        payout = Payout.objects.select_for_update().get(pk=payout_id)
        with legal_transition(payout, "complete"):
            payout.complete(transfer_reference=transfer.id, now=now)
        payout.save()
        notify(NotificationEvent.PAYOUT_COMPLETED, payout)

    logger.info(
        "Payout completed",
        extra={
            "payout_id": str(payout_id),
            "transfer_reference": transfer.id,
            "amount_cents": payout.net_payout_cents,
        },
    )
    return OUTCOME_PROCESSED


def _claim(payout: Payout, now: datetime) -> None:
    if not Payout.objects.claim(payout.id, now=now):
        raise ConcurrencyConflictError(
            "Payout is no longer eligible",
            details={"payout_id": str(payout.id)},
        )


def _hold_for_payout_account(payout_id: uuid.UUID) -> str:
    with transaction.atomic():
        payout = Payout.objects.select_for_update().get(pk=payout_id)
        if payout.status != PayoutState.ELIGIBLE:
            return OUTCOME_SKIPPED
        with legal_transition(payout, "hold"):
            payout.hold(flags=[RiskFlag.PAYOUT_ACCOUNT_NOT_READY.value])
        payout.save()
        notify(NotificationEvent.PAYOUT_HELD, payout)

    logger.warning(
        "Payout held: organization cannot receive transfers",
        extra={"payout_id": str(payout_id)},
    )
    return OUTCOME_HELD


def _record_failure(payout_id: uuid.UUID, error: GatewayError, now: datetime) -> None:
    with transaction.atomic():
        payout = Payout.objects.select_for_update().get(pk=payout_id)
        with legal_transition(payout, "fail"):
            payout.fail(
                reason=error.message,
                error_code=error.error_code,
                retryable=error.is_retryable,
                now=now,
            )
        payout.save()

    logger.warning(
        "Payout transfer failed",
        extra={
            "payout_id": str(payout_id),
            "error_code": error.error_code,
            "retryable": error.is_retryable,
            "failed_attempts": payout.failed_attempts,
        },
    )
