"""
Root pytest configuration for the Django project.

Sets the settings module and the environment defaults the settings need
before Django is configured. Payout fixtures are defined in
app/payouts/conftest.py.
"""

import os
from pathlib import Path

import django

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DEBUG", "False")
os.environ.setdefault("SECURE_SSL_REDIRECT", "False")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "True")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_placeholder")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_placeholder")
os.environ.setdefault(
    "EMAIL_BACKEND", "django.core.mail.backends.locmem.EmailBackend"
)
# Postgres in CI via DATABASE_URL; SQLite when none is configured
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite:///{Path(__file__).resolve().parent / 'test-db.sqlite3'}",
)


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()
