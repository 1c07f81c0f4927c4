"""
Tests for the payouts app.

This package contains test modules for:
- test_models.py: Payout, Chargeback, WebhookEvent model tests
- test_state_transitions.py: Payout and Chargeback FSM transitions
- test_views.py: Admin API endpoint tests
- test_tasks.py: Celery task tests
- test_integration.py: Full payout lifecycle workflows

Usage:
    pytest payouts/tests/
    pytest payouts/ -m unit
"""
