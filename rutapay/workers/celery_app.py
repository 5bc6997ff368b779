"""
Celery Application Configuration

Only the notification outbox runs here; money never moves inside a task.
"""
from celery import Celery
from celery.schedules import crontab

from rutapay.core.config import settings

celery_app = Celery(
    "rutapay",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["rutapay.workers.tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="America/La_Paz",
    enable_utc=True,
    # a batch is one poll interval of work; a stuck one is killed before the next pile-up
    task_soft_time_limit=max(settings.OUTBOX_POLL_INTERVAL_SECONDS * 6, 60),
    task_time_limit=max(settings.OUTBOX_POLL_INTERVAL_SECONDS * 6, 60) + 30,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_routes={"rutapay.workers.tasks.*": {"queue": "outbox"}},
    # results of a poll are only logged
    task_ignore_result=True,
)

celery_app.conf.beat_schedule = {
    "process-outbox": {
        "task": "rutapay.workers.tasks.process_outbox_messages",
        "schedule": float(settings.OUTBOX_POLL_INTERVAL_SECONDS),
    },
    "cleanup-sent-outbox-nightly": {
        "task": "rutapay.workers.tasks.cleanup_old_messages",
        "schedule": crontab(hour="4", minute="0"),
    },
}
