"""
Stripe webhook handling for refunds.

Webhooks are verified, stored idempotently, and processed asynchronously
via Celery tasks.
"""
