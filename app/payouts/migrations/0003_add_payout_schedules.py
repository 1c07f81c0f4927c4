"""
Add celery-beat schedules for the payout engine.

This migration creates periodic task schedules for:
- The eligibility sweep (every 15 minutes)
- The payout batch processor (every 30 minutes)
- The reserve release run (hourly)
- Webhook retries (every 10 minutes)
"""

from django.db import migrations

PERIODIC_TASKS = [
    (
        "Evaluate Pending Payouts",
        "payouts.evaluate_pending_payouts",
        15,
        "minutes",
        "Moves matured pending payouts to eligible or held and re-gates "
        "failed payouts for another transfer attempt.",
    ),
    (
        "Process Eligible Payouts",
        "payouts.process_eligible_payouts",
        30,
        "minutes",
        "Claims eligible payouts and transfers the net amount to the "
        "organization's connected account.",
    ),
    (
        "Process Reserve Releases",
        "payouts.process_reserve_releases",
        1,
        "hours",
        "Forfeits reserve to lost chargebacks and releases what remains "
        "once the reserve hold has elapsed.",
    ),
    (
        "Retry Failed Payout Webhooks",
        "payouts.retry_failed_webhooks",
        10,
        "minutes",
        "Requeues failed and stale pending Stripe webhook events.",
    ),
]


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for the payout engine."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for name, task, every, period, description in PERIODIC_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=every,
            period=period,
        )
        PeriodicTask.objects.get_or_create(
            name=name,
            defaults={
                "task": task,
                "interval": schedule,
                "enabled": True,
                "description": description,
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[entry[0] for entry in PERIODIC_TASKS],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payouts", "0002_seed_policies"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
