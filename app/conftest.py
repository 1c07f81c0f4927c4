"""
Pytest configuration for the payout engine apps.

This module tunes settings for the test run and auto-marks tests by file
name. Fixtures shared by the payout tests live in payouts/conftest.py.
"""

import pytest


def pytest_configure():
    """Adjust settings for fast, isolated test runs."""
    from django.conf import settings

    # Use fast password hasher for tests (PBKDF2 is too slow with 870K iterations)
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    # Simple static storage; the manifest only exists after collectstatic
    settings.STORAGES = {
        **settings.STORAGES,
        "staticfiles": {
            "BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage",
        },
    }


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full payout lifecycle workflows)
    - test_views.py, test_tasks.py, test_batch_processor.py, etc. → integration
    - test_models.py, test_fee_calculator.py, test_state_transitions.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    # Filename patterns for each category
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_tasks.py",
        "test_webhooks.py",
        "test_handlers.py",
        "test_batch_processor.py",
        "test_reserve_release.py",
        "test_eligibility.py",
        "test_review.py",
        "test_chargebacks.py",
        "test_payout_creation.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_serializers.py",
        "test_stripe_adapter.py",
        "test_fee_calculator.py",
        "test_state_transitions.py",
        "test_types.py",
        "test_exceptions.py",
    ]

    for item in items:
        # Skip if test already has unit/integration/e2e marker
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        # Check patterns in priority order
        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            # Default: integration (safe for Django where most tests hit DB)
            item.add_marker(pytest.mark.integration)
