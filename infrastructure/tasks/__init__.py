"""Celery task infrastructure package.

Importing this package configures the Celery app, registers the payment
tasks and exposes the dispatcher facade the notifier adapter uses.
"""
from .config.celery import celery_app
from . import tasks  # noqa: F401 registers payment tasks
from .utils.dispatcher import TaskDispatcher

__all__ = ["celery_app", "TaskDispatcher"]
