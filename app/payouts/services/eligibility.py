"""
Eligibility gate.

Decides whether a payout may leave for the gateway:

    1. Maturity   event ended less than PAYOUT_MATURITY_WINDOW_DAYS ago -> stay pending
    2. Risk       chargebacks, auto-limit, flagged org, large first event,
                  missing W-9 -> held
    3. Eligible   otherwise -> eligible

Failed payouts are re-gated for another attempt: the retry limit and a
non-retryable gateway error send them to review, as does any risk.

EligibilityGate is pure: it takes the payout, a RiskContext and `now`
and returns a GateDecision. EligibilityService loads the inputs, applies
the decision under a row lock and drives the periodic sweep.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from django.conf import settings

from core.services import BaseService
from payouts.exceptions import PayoutNotFoundError
from payouts.models import OrganizationTrustProfile, Payout
from payouts.notifications import NotificationEvent, notify
from payouts.state_machines import PayoutState, RiskFlag, TrustLevel
from payouts.state_machines.guards import legal_transition

from .chargebacks import ChargebackService
from .policies import PolicyResolver

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

BATCH_SIZE = 100

GATED_STATES = (PayoutState.PENDING, PayoutState.ELIGIBLE, PayoutState.FAILED)


# =============================================================================
# Gate Types
# =============================================================================


@dataclass(frozen=True)
class RiskContext:
    """Organization risk inputs for one payout."""

    trust_level: str = TrustLevel.NEW
    successful_events_count: int = 0
    chargeback_count: int = 0
    prior_chargebacks: int = 0
    open_chargebacks: int = 0
    auto_payout_limit_cents: int | None = None
    tax_info_verified: bool = True
    # Chargebacks opened or lost after the payout's last review
    open_chargebacks_since_review: int = 0
    lost_chargebacks_since_review: int = 0


@dataclass(frozen=True)
class GateDecision:
    """
    Outcome of one gate evaluation.

    Attributes:
        target: State to move to, or None to leave the payout unchanged
        flags: Risk flags to add when holding
        reason: Short machine-readable explanation for logs
    """

    target: str | None
    flags: tuple[str, ...] = field(default_factory=tuple)
    reason: str = ""

    @property
    def is_unchanged(self) -> bool:
        return self.target is None


# =============================================================================
# Gate
# =============================================================================


class EligibilityGate:
    """
    Pure eligibility rules.

    Usage:
        gate = EligibilityGate.from_settings()
        decision = gate.evaluate(payout, context, now=timezone.now())
    """

    def __init__(
        self,
        maturity_window: timedelta = timedelta(days=7),
        chargeback_risk_threshold: int = 0,
        max_transfer_attempts: int = 3,
        high_value_threshold_cents: int = 500000,
        tax_info_threshold_cents: int = 60000,
    ):
        self.maturity_window = maturity_window
        self.chargeback_risk_threshold = chargeback_risk_threshold
        self.max_transfer_attempts = max_transfer_attempts
        self.high_value_threshold_cents = high_value_threshold_cents
        self.tax_info_threshold_cents = tax_info_threshold_cents

    @classmethod
    def from_settings(cls) -> EligibilityGate:
        return cls(
            maturity_window=timedelta(
                days=getattr(settings, "PAYOUT_MATURITY_WINDOW_DAYS", 7)
            ),
            chargeback_risk_threshold=getattr(
                settings, "PAYOUT_CHARGEBACK_RISK_THRESHOLD", 0
            ),
            max_transfer_attempts=getattr(settings, "PAYOUT_MAX_TRANSFER_ATTEMPTS", 3),
            high_value_threshold_cents=getattr(
                settings, "PAYOUT_HIGH_VALUE_THRESHOLD_CENTS", 500000
            ),
            tax_info_threshold_cents=getattr(
                settings, "PAYOUT_TAX_INFO_THRESHOLD_CENTS", 60000
            ),
        )

    def evaluate(self, payout: Payout, context: RiskContext, now: datetime) -> GateDecision:
        status = payout.status

        if status == PayoutState.PENDING:
            if now < payout.event_ended_at + self.maturity_window:
                return GateDecision(target=None, reason="not_mature")
            flags = self.risk_flags(payout, context)
            if flags:
                return GateDecision(target=PayoutState.HELD, flags=flags, reason="risk")
            return GateDecision(target=PayoutState.ELIGIBLE, reason="mature")

        if status == PayoutState.ELIGIBLE:
            flags = self.risk_flags(payout, context)
            if flags:
                return GateDecision(target=PayoutState.HELD, flags=flags, reason="risk")
            return GateDecision(target=None, reason="still_eligible")

        if status == PayoutState.FAILED:
            if payout.failed_attempts >= self.max_transfer_attempts:
                return GateDecision(
                    target=PayoutState.HELD,
                    flags=(RiskFlag.TRANSFER_RETRY_LIMIT.value,),
                    reason="retry_limit",
                )
            if not payout.last_error_retryable:
                return GateDecision(
                    target=PayoutState.HELD,
                    flags=(RiskFlag.TRANSFER_REJECTED.value,),
                    reason="non_retryable_error",
                )
            flags = self.risk_flags(payout, context)
            if flags:
                return GateDecision(target=PayoutState.HELD, flags=flags, reason="risk")
            return GateDecision(target=PayoutState.ELIGIBLE, reason="retry")

        return GateDecision(target=None, reason="not_gated")

    def risk_flags(self, payout: Payout, context: RiskContext) -> tuple[str, ...]:
        """
        Risk flags that are new for this payout.

        Flags an admin already reviewed (approved payouts keep their
        flags) do not divert the payout again, unless a chargeback was
        opened or lost after that review. A missing W-9 is never
        acknowledged.
        """
        flags: list[str] = []
        if context.open_chargebacks > 0:
            flags.append(RiskFlag.OPEN_CHARGEBACK.value)
        if (
            max(context.chargeback_count, context.prior_chargebacks)
            > self.chargeback_risk_threshold
        ):
            flags.append(RiskFlag.CHARGEBACK_HISTORY.value)
        if (
            context.auto_payout_limit_cents is not None
            and payout.net_payout_cents > context.auto_payout_limit_cents
        ):
            flags.append(RiskFlag.EXCEEDS_AUTO_LIMIT.value)
        if context.trust_level == TrustLevel.FLAGGED:
            flags.append(RiskFlag.FLAGGED_ORGANIZATION.value)
        if (
            context.successful_events_count == 0
            and payout.gross_amount_cents > self.high_value_threshold_cents
        ):
            flags.append(RiskFlag.FIRST_EVENT.value)
            flags.append(RiskFlag.HIGH_VALUE.value)

        acknowledged: set[str] = set()
        if payout.reviewed_at:
            acknowledged = set(payout.flags or [])
            if context.open_chargebacks_since_review:
                acknowledged.discard(RiskFlag.OPEN_CHARGEBACK.value)
            if context.lost_chargebacks_since_review:
                acknowledged.discard(RiskFlag.CHARGEBACK_HISTORY.value)
        acknowledged.discard(RiskFlag.W9_REQUIRED.value)

        if (
            not context.tax_info_verified
            and payout.net_payout_cents >= self.tax_info_threshold_cents
        ):
            flags.append(RiskFlag.W9_REQUIRED.value)

        return tuple(flag for flag in flags if flag not in acknowledged)


# =============================================================================
# Service
# =============================================================================


class EligibilityService(BaseService):
    """Loads gate inputs, applies decisions and runs the sweep."""

    @classmethod
    def build_risk_context(cls, payout: Payout) -> RiskContext:
        profile = OrganizationTrustProfile.objects.filter(
            organization_id=payout.organization_id
        ).first()
        trust_level = profile.trust_level if profile else payout.trust_level_at_creation

        open_since_review = lost_since_review = 0
        if payout.reviewed_at:
            open_since_review = ChargebackService.open_chargeback_count(
                payout.organization_id, opened_after=payout.reviewed_at
            )
            lost_since_review = ChargebackService.prior_chargeback_count(
                payout.organization_id, lost_after=payout.reviewed_at
            )

        return RiskContext(
            trust_level=trust_level,
            successful_events_count=profile.successful_events_count if profile else 0,
            chargeback_count=profile.chargeback_count if profile else 0,
            prior_chargebacks=ChargebackService.prior_chargeback_count(
                payout.organization_id
            ),
            open_chargebacks=ChargebackService.open_chargeback_count(
                payout.organization_id
            ),
            auto_payout_limit_cents=PolicyResolver.auto_payout_limit(trust_level),
            tax_info_verified=profile.tax_info_verified if profile else False,
            open_chargebacks_since_review=open_since_review,
            lost_chargebacks_since_review=lost_since_review,
        )

    @classmethod
    def evaluate_payout(
        cls,
        payout_id: uuid.UUID,
        now: datetime,
        gate: EligibilityGate | None = None,
    ) -> GateDecision:
        """
        Evaluate one payout and apply the decision.

        Raises:
            PayoutNotFoundError: Unknown payout id
        """
        gate = gate or EligibilityGate.from_settings()

        with cls.atomic():
            try:
                payout = Payout.objects.select_for_update().get(pk=payout_id)
            except Payout.DoesNotExist:
                raise PayoutNotFoundError(
                    "Payout not found",
                    details={"payout_id": str(payout_id)},
                )

            decision = gate.evaluate(payout, cls.build_risk_context(payout), now)
            if decision.is_unchanged:
                return decision

            previous = payout.status
            cls._apply(payout, decision, now)
            payout.save()

            if decision.target == PayoutState.HELD:
                notify(NotificationEvent.PAYOUT_HELD, payout)

        cls.get_logger().info(
            "Payout gated",
            extra={
                "payout_id": str(payout_id),
                "from_state": str(previous),
                "to_state": str(decision.target),
                "flags": list(decision.flags),
                "reason": decision.reason,
            },
        )
        return decision

    @staticmethod
    def _apply(payout: Payout, decision: GateDecision, now: datetime) -> None:
        if decision.target == PayoutState.HELD:
            with legal_transition(payout, "hold"):
                payout.hold(flags=decision.flags)
        elif payout.status == PayoutState.FAILED:
            with legal_transition(payout, "requeue"):
                payout.requeue(now=now)
        else:
            with legal_transition(payout, "mark_eligible"):
                payout.mark_eligible(now=now)

    @classmethod
    def sweep(cls, now: datetime, gate: EligibilityGate | None = None) -> dict[str, int]:
        """
        Gate every pending, eligible and failed payout.

        Each payout is evaluated in its own transaction; one failure is
        logged and counted without stopping the sweep.

        Returns:
            {"evaluated", "eligible", "held", "unchanged", "errors"}
        """
        gate = gate or EligibilityGate.from_settings()
        counts = {"evaluated": 0, "eligible": 0, "held": 0, "unchanged": 0, "errors": 0}

        payout_ids = list(
            Payout.objects.filter(status__in=GATED_STATES)
            .order_by("created_at")
            .values_list("id", flat=True)
        )

        batch_size = getattr(settings, "PAYOUT_BATCH_SIZE", BATCH_SIZE)
        for start in range(0, len(payout_ids), batch_size):
            for payout_id in payout_ids[start : start + batch_size]:
                counts["evaluated"] += 1
                try:
                    decision = cls.evaluate_payout(payout_id, now=now, gate=gate)
                except Exception:
                    logger.exception(
                        "Error gating payout",
                        extra={"payout_id": str(payout_id)},
                    )
                    counts["errors"] += 1
                    continue

                if decision.target == PayoutState.ELIGIBLE:
                    counts["eligible"] += 1
                elif decision.target == PayoutState.HELD:
                    counts["held"] += 1
                else:
                    counts["unchanged"] += 1

        return counts
