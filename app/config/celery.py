"""
Celery configuration for the refund service.

Workers run the Stripe webhook processing task; celery-beat runs the
periodic sweeps (webhook retries, stuck-event resets, deferred order
updates) from schedules stored by django-celery-beat.

Redis is both the message broker and result backend. Tasks are
auto-discovered from all installed Django apps.

Usage:
    celery -A config worker -l info
    celery -A config beat -l info

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

# Picks up refunds/tasks.py
app.autodiscover_tasks()
