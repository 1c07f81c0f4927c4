"""
Admin review workflow for held payouts.

Approving moves a held payout back to eligible; rejecting ends the
payout. Both stamp who reviewed it, when, and why.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from django.utils import timezone

from core.services import BaseService
from payouts.exceptions import InvalidStateError, PayoutNotFoundError
from payouts.models import Payout
from payouts.state_machines import PayoutState

APPROVABLE_STATES = frozenset({PayoutState.HELD.value})
REJECTABLE_STATES = frozenset({PayoutState.HELD.value, PayoutState.ELIGIBLE.value})


class ReviewService(BaseService):
    @classmethod
    def approve_payout(
        cls,
        payout_id: uuid.UUID,
        admin_user_id,
        notes: str = "",
        now: datetime | None = None,
    ) -> Payout:
        """
        Approve a held payout.

        Raises:
            PayoutNotFoundError: Unknown payout id
            InvalidStateError: Payout is not held
        """
        now = cls._now(now)
        with cls.atomic():
            payout = cls._get_for_update(payout_id)
            cls._require_state(payout, APPROVABLE_STATES, "approve")
            payout.approve(reviewer_id=str(admin_user_id), notes=notes, now=now)
            payout.save()

        cls.get_logger().info(
            "Payout approved",
            extra={"payout_id": str(payout.id), "reviewed_by": str(admin_user_id)},
        )
        return payout

    @classmethod
    def reject_payout(
        cls,
        payout_id: uuid.UUID,
        admin_user_id,
        reason: str,
        now: datetime | None = None,
    ) -> Payout:
        """
        Reject a held or eligible payout.

        Raises:
            PayoutNotFoundError: Unknown payout id
            InvalidStateError: Payout is neither held nor eligible
        """
        now = cls._now(now)
        with cls.atomic():
            payout = cls._get_for_update(payout_id)
            cls._require_state(payout, REJECTABLE_STATES, "reject")
            payout.reject(reviewer_id=str(admin_user_id), reason=reason, now=now)
            payout.save()

        cls.get_logger().info(
            "Payout rejected",
            extra={"payout_id": str(payout.id), "reviewed_by": str(admin_user_id)},
        )
        return payout

    @staticmethod
    def _now(now: datetime | None) -> datetime:
        return now if now is not None else timezone.now()

    @staticmethod
    def _get_for_update(payout_id: uuid.UUID) -> Payout:
        try:
            return Payout.objects.select_for_update().get(pk=payout_id)
        except Payout.DoesNotExist:
            raise PayoutNotFoundError(
                "Payout not found",
                details={"payout_id": str(payout_id)},
            )

    @staticmethod
    def _require_state(payout: Payout, allowed: frozenset[str], action: str) -> None:
        if payout.status not in allowed:
            raise InvalidStateError(
                f"Cannot {action} a payout in '{payout.status}' state",
                details={
                    "payout_id": str(payout.id),
                    "current_state": str(payout.status),
                    "action": action,
                },
            )
