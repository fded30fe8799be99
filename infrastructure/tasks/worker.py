"""Worker entry point: consumes every payment queue and embeds the beat scheduler.

Run with ``python -m infrastructure.tasks.worker``.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main(
        argv=[
            "worker",
            "--hostname=worker@%h",
            "--queues=high,default,low",
            "--beat",
        ]
    )


if __name__ == "__main__":
    main()
