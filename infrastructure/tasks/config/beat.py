"""Celery beat schedule: periodic reconciliation of stale payments."""
from __future__ import annotations

from core.settings import payment_settings

CELERY_BEAT_SCHEDULE = {
    "reconcile-stale-payments": {
        "task": "payments.reconcile_stale",
        "schedule": float(payment_settings.reconciliation.interval_seconds),
        "options": {"queue": "low"},
    },
}
