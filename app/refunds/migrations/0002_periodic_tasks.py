"""
Add celery-beat schedules for refund background work.

- Retry failed webhook events (every 5 minutes)
- Reset webhook events stuck in processing (every 15 minutes)
- Apply order updates left pending after a refund (every 5 minutes)
"""

from django.db import migrations

PERIODIC_TASKS = [
    {
        "name": "Retry Failed Refund Webhooks",
        "task": "refunds.tasks.retry_failed_webhooks",
        "every": 5,
        "description": "Re-queues failed Stripe webhook events and pending ones never queued.",
    },
    {
        "name": "Reset Stuck Refund Webhooks",
        "task": "refunds.tasks.cleanup_stuck_webhooks",
        "every": 15,
        "description": "Marks webhook events stuck in processing as failed so they are retried.",
    },
    {
        "name": "Reconcile Pending Refund Order Updates",
        "task": "refunds.tasks.reconcile_pending_refund_updates",
        "every": 5,
        "description": (
            "Applies order totals/status for refunds whose order update failed "
            "after Stripe accepted the refund."
        ),
    },
]


def create_periodic_tasks(apps, schema_editor):
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for definition in PERIODIC_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=definition["every"],
            period="minutes",
        )
        PeriodicTask.objects.get_or_create(
            name=definition["name"],
            defaults={
                "task": definition["task"],
                "interval": schedule,
                "enabled": True,
                "description": definition["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[definition["name"] for definition in PERIODIC_TASKS],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("refunds", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
