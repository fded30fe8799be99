"""Celery application for payment side effects (confirmation mail, reconciliation sweeps)"""
from __future__ import annotations

import os
from core.logging_config import get_logger
from celery import Celery
from celery.signals import setup_logging
from kombu import Queue

from core.config import settings
from core.settings import payment_settings
from .beat import CELERY_BEAT_SCHEDULE


TASK_PACKAGES = (
    "infrastructure.tasks.tasks",
)

CONFIRMATION_TASK = "payments.send_confirmation"
RECONCILIATION_TASK = "payments.reconcile_stale"


celery_app = Celery("hackfest_payments")

celery_app.conf.update(
    broker_url=settings.redis.url or os.getenv("CELERY_BROKER_URL"),
    result_backend=settings.redis.url or os.getenv("CELERY_RESULT_BACKEND"),
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # ack after completion; a lost worker hands the task to another one
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_default_retry_delay=5,
    # give up publishing after a few seconds when the broker is down
    task_publish_retry_policy={
        "max_retries": 3,
        "interval_start": 0,
        "interval_step": 0.5,
        "interval_max": 2,
    },
    task_queues=(
        Queue("high"),
        Queue("default"),
        Queue("low"),
    ),
    task_routes={
        CONFIRMATION_TASK: {"queue": "high"},
        RECONCILIATION_TASK: {"queue": "low"},
    },
    task_annotations={
        # a sweep must finish before the next beat tick starts another one
        RECONCILIATION_TASK: {"time_limit": payment_settings.reconciliation.interval_seconds},
    },
    beat_schedule=CELERY_BEAT_SCHEDULE,
)

celery_app.conf.imports = TASK_PACKAGES

environment = getattr(settings, "ENVIRONMENT", "production") or "production"
if environment.lower() in {"development", "dev", "test", "testing"}:
    celery_app.conf.task_always_eager = True

celery_app.autodiscover_tasks(packages=TASK_PACKAGES)


logger = get_logger(__name__)


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    # structlog owns the root logger in workers too
    from core.logging_config import configure_logging

    configure_logging()


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        eager=bool(sender.conf.task_always_eager),
        queues=[queue.name for queue in sender.conf.task_queues],
    )
