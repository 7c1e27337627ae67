"""Background workers for the webhook engine.

Each worker is a standalone module exporting a single async task function
compatible with :class:`webhook_common.worker.WorkerTask`.

The :data:`worker` instance aggregates all tasks and provides
``start_background_worker`` / ``stop_background_worker`` lifecycle hooks.
Delivery itself runs in the dispatcher loops, not here.
"""
from __future__ import annotations

from webhook_common.worker import BackgroundWorker, WorkerTask

from webhook_engine.settings import settings
from webhook_engine.workers.audit_purge import audit_log_purge
from webhook_engine.workers.subscription_health import subscription_health

worker = BackgroundWorker(
    name="maintenance",
    interval_seconds=settings.worker_interval_seconds,
    tasks=[
        WorkerTask(name="audit_log_purge", fn=audit_log_purge),
        WorkerTask(name="subscription_health", fn=subscription_health),
    ],
)

start_background_worker = worker.start
stop_background_worker = worker.stop

__all__ = [
    "worker",
    "start_background_worker",
    "stop_background_worker",
]
