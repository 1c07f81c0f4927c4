"""
Celery configuration for the payout engine.

The worker runs the payout tasks in payouts.tasks:
- Periodic runs scheduled by celery-beat (DatabaseScheduler); the
  schedules are PeriodicTask rows installed by payouts migration 0003
- On-demand work: payout creation, webhook processing, chargeback
  deductions and notification emails

Tasks are auto-discovered from all installed Django apps.

Usage:
    celery -A config worker -l info
    celery -A config beat -l info

    from payouts.tasks import create_event_payout
    create_event_payout.delay(payload)

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Looks for a tasks.py module in each installed app
app.autodiscover_tasks()
