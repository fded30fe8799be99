"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict

from ..config.celery import CONFIRMATION_TASK, celery_app


class TaskDispatcher:
    """Internal facade used by infrastructure adapters to schedule tasks."""

    def send_payment_confirmation(self, event: Dict[str, Any]) -> None:
        """Fire-and-forget confirmation for a newly settled payment."""
        self.enqueue(CONFIRMATION_TASK, kwargs={"event": event})

    def enqueue(self, task_name: str, *, args: tuple | None = None, kwargs: Dict[str, Any] | None = None) -> None:
        """Schedule a task by name.

        Registered tasks go through apply_async so task_always_eager is honoured;
        unknown names are sent to the broker as-is.
        """
        task = celery_app.tasks.get(task_name)
        if task is not None:
            task.apply_async(args=args or (), kwargs=kwargs or {})
            return
        celery_app.send_task(task_name, args=args or (), kwargs=kwargs or {})
