"""
Payouts app: the payout and reserve lifecycle engine.

This app handles:
- Splitting auction proceeds into fees, reserve and net payout
- Gating payouts on maturity and organization risk
- Batch transfers to organizations' Stripe connected accounts
- Reserve withholding, release and chargeback forfeiture
- Gateway dispute intake and admin review

Related modules:
    - payouts.services: calculator, eligibility gate, review, chargebacks
    - payouts.workers: batch processor and reserve release jobs
    - payouts.ledger: append-only reserve ledger
"""
