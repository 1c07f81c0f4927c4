"""
Chargeback ledger service.

Records disputes reported by the gateway, resolves them (gateway callback
or admin), and feeds chargeback counts to the eligibility gate. Reserve
deductions for lost chargebacks are applied by the reserve ledger;
resolving a chargeback as lost schedules that deduction after commit.

Usage:
    from payouts.services.chargebacks import ChargebackService

    chargeback, created = ChargebackService.record_dispute(
        gateway_dispute_id="dp_123",
        organization_id=org_id,
        event_id=event_id,
        amount_cents=4000,
    )
    ChargebackService.resolve_dispute(
        gateway_dispute_id="dp_123", outcome="lost", now=timezone.now()
    )
"""

from __future__ import annotations

import uuid
from datetime import datetime

from django.db import IntegrityError, transaction

from core.services import BaseService
from payouts.exceptions import (
    ChargebackNotFoundError,
    InvalidAmountError,
    InvalidStateError,
    PayoutValidationError,
)
from payouts.models import Chargeback
from payouts.state_machines import ChargebackStatus, ResolutionSource

RESOLVED_OUTCOMES = frozenset(
    {
        ChargebackStatus.WON.value,
        ChargebackStatus.LOST.value,
        ChargebackStatus.CLOSED.value,
    }
)


class ChargebackService(BaseService):
    """Service for recording and resolving chargebacks."""

    # ==========================================================================
    # Recording
    # ==========================================================================

    @classmethod
    def record_dispute(
        cls,
        gateway_dispute_id: str,
        organization_id: uuid.UUID,
        amount_cents: int,
        event_id: uuid.UUID | None = None,
        currency: str = "usd",
        reason: str = "",
        payment_intent_id: str = "",
    ) -> tuple[Chargeback, bool]:
        """
        Record a dispute, idempotent on gateway_dispute_id.

        Returns:
            (chargeback, created)

        Raises:
            InvalidAmountError: If amount_cents is not positive
        """
        if not gateway_dispute_id:
            raise PayoutValidationError(
                "A gateway dispute id is required",
                error_code="MISSING_DISPUTE_ID",
            )
        if not isinstance(amount_cents, int) or amount_cents <= 0:
            raise InvalidAmountError(
                "Chargeback amount must be positive",
                details={"amount_cents": amount_cents},
            )

        existing = Chargeback.objects.filter(gateway_dispute_id=gateway_dispute_id).first()
        if existing is not None:
            return existing, False

        try:
            with transaction.atomic():
                chargeback = Chargeback.objects.create(
                    gateway_dispute_id=gateway_dispute_id,
                    organization_id=organization_id,
                    event_id=event_id,
                    amount_cents=amount_cents,
                    currency=(currency or "usd").lower(),
                    reason=reason or "",
                    gateway_payment_intent_id=payment_intent_id or "",
                )
        except IntegrityError:
            return Chargeback.objects.get(gateway_dispute_id=gateway_dispute_id), False

        cls.get_logger().info(
            "Chargeback recorded",
            extra={
                "chargeback_id": str(chargeback.id),
                "gateway_dispute_id": gateway_dispute_id,
                "organization_id": str(organization_id),
                "event_id": str(event_id) if event_id else None,
                "amount_cents": amount_cents,
            },
        )
        return chargeback, True

    # ==========================================================================
    # Resolution
    # ==========================================================================

    @classmethod
    def resolve_dispute(
        cls,
        outcome: str,
        now: datetime,
        chargeback_id: uuid.UUID | None = None,
        gateway_dispute_id: str | None = None,
        source: str = ResolutionSource.GATEWAY,
    ) -> tuple[Chargeback, bool]:
        """
        Move an open chargeback to won, lost or closed.

        Resolving again with the same outcome is a no-op. Any other change
        to a resolved chargeback raises; a lost chargeback stays lost.

        Returns:
            (chargeback, changed)

        Raises:
            ChargebackNotFoundError: Unknown id
            InvalidStateError: Chargeback already resolved differently
            PayoutValidationError: Unknown outcome
        """
        outcome = str(outcome)
        if outcome not in RESOLVED_OUTCOMES:
            raise PayoutValidationError(
                f"Unknown chargeback outcome {outcome!r}",
                error_code="INVALID_OUTCOME",
                details={"outcome": outcome},
            )

        with cls.atomic():
            chargeback = cls._get_for_update(chargeback_id, gateway_dispute_id)

            if chargeback.status == outcome:
                return chargeback, False

            if chargeback.status != ChargebackStatus.OPEN:
                raise InvalidStateError(
                    f"Chargeback already resolved as '{chargeback.status}'",
                    details={
                        "chargeback_id": str(chargeback.id),
                        "current_state": str(chargeback.status),
                        "requested": outcome,
                    },
                )

            if outcome == ChargebackStatus.WON:
                chargeback.win(now=now, source=source)
            elif outcome == ChargebackStatus.LOST:
                chargeback.lose(now=now, source=source)
            else:
                chargeback.close(now=now, source=source)
            chargeback.save()

            if outcome == ChargebackStatus.LOST:
                chargeback_pk = chargeback.pk
                transaction.on_commit(lambda: cls._enqueue_reserve_deduction(chargeback_pk))

        cls.get_logger().info(
            "Chargeback resolved",
            extra={
                "chargeback_id": str(chargeback.id),
                "outcome": outcome,
                "source": str(source),
            },
        )
        return chargeback, True

    @classmethod
    def _enqueue_reserve_deduction(cls, chargeback_id: uuid.UUID) -> None:
        from payouts.tasks import apply_chargeback_to_reserves

        try:
            apply_chargeback_to_reserves.delay(str(chargeback_id))
        except Exception:
            # The reserve release run applies the loss even if this never runs
            cls.get_logger().exception(
                "Failed to enqueue chargeback reserve deduction",
                extra={"chargeback_id": str(chargeback_id)},
            )

    @classmethod
    def _get_for_update(
        cls,
        chargeback_id: uuid.UUID | None,
        gateway_dispute_id: str | None,
    ) -> Chargeback:
        queryset = Chargeback.objects.select_for_update()
        try:
            if chargeback_id is not None:
                return queryset.get(pk=chargeback_id)
            if gateway_dispute_id:
                return queryset.get(gateway_dispute_id=gateway_dispute_id)
        except Chargeback.DoesNotExist:
            pass

        raise ChargebackNotFoundError(
            "Chargeback not found",
            details={
                "chargeback_id": str(chargeback_id) if chargeback_id else None,
                "gateway_dispute_id": gateway_dispute_id,
            },
        )

    # ==========================================================================
    # Gate inputs
    # ==========================================================================

    @staticmethod
    def open_chargeback_count(
        organization_id: uuid.UUID,
        event_id: uuid.UUID | None = None,
        opened_after: datetime | None = None,
    ) -> int:
        """
        Open chargebacks for an organization.

        With an event id, counts those tied to that event plus those not
        tied to any event. With opened_after, counts only chargebacks
        recorded after that moment.
        """
        queryset = Chargeback.objects.open()
        if opened_after is not None:
            queryset = queryset.filter(created_at__gt=opened_after)
        if event_id is not None:
            return queryset.affecting_event(organization_id, event_id).count()
        return queryset.filter(organization_id=organization_id).count()

    @staticmethod
    def prior_chargeback_count(
        organization_id: uuid.UUID,
        lost_after: datetime | None = None,
    ) -> int:
        """Lost chargebacks on record for an organization."""
        queryset = Chargeback.objects.lost().filter(organization_id=organization_id)
        if lost_after is not None:
            queryset = queryset.filter(resolved_at__gt=lost_after)
        return queryset.count()
