"""
Batch workers for the payout engine.

- batch_processor: Drains eligible payouts through the gateway
- reserve_release: Releases or forfeits reserves after the hold period

The Celery tasks in payouts.tasks call these on a beat schedule; the
admin API calls them directly for on-demand runs.
"""

from payouts.workers.batch_processor import PayoutBatchResult, process_eligible_payouts
from payouts.workers.reserve_release import (
    ReserveReleaseResult,
    apply_chargeback_to_reserves,
    process_reserve_releases,
)

__all__ = [
    "PayoutBatchResult",
    "ReserveReleaseResult",
    "apply_chargeback_to_reserves",
    "process_eligible_payouts",
    "process_reserve_releases",
]
