"""
Celery Tasks for notification delivery

Worker side of the Transactional Outbox: pending outbox rows become
Notification rows, with retries and backoff handled by OutboxService.
"""
import asyncio
from contextlib import contextmanager
from typing import Optional

from rutapay.workers.celery_app import celery_app
from rutapay.core.config import settings
from rutapay.core.logging import get_logger, log_async_operation, set_correlation_id
from rutapay.db.database import get_task_session
from rutapay.domain.services.outbox_service import OutboxService

logger = get_logger(__name__)


@contextmanager
def get_event_loop():
    """
    Fresh event loop per task run, closed with its pending tasks and
    async generators afterwards.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        yield loop
    finally:
        try:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()


def run_async(coro):
    """Run ``coro`` to completion from a sync Celery task under a new correlation id"""
    set_correlation_id()

    with get_event_loop() as loop:
        return loop.run_until_complete(coro)


@log_async_operation("process_outbox_batch")
async def _process_outbox_batch(limit: Optional[int] = None) -> dict:
    async with get_task_session() as db:
        stats = await OutboxService(db).process_pending(limit=limit or settings.OUTBOX_BATCH_SIZE)

    if stats["failed"]:
        logger.warning("Outbox batch left messages for retry", extra_data=stats)
    return stats


@log_async_operation("cleanup_sent_messages")
async def _cleanup_sent_messages(days: int) -> dict:
    async with get_task_session() as db:
        deleted = await OutboxService(db).cleanup_sent(older_than_days=days)
    return {"deleted": deleted}


@celery_app.task(name="rutapay.workers.tasks.process_outbox_messages")
def process_outbox_messages():
    """
    Deliver due outbox messages as notifications.
    Runs periodically; a message is retried with backoff until max_retries.
    """
    return run_async(_process_outbox_batch())


@celery_app.task(name="rutapay.workers.tasks.cleanup_old_messages")
def cleanup_old_messages(days: Optional[int] = None):
    """Clean up old sent messages from the outbox"""
    return run_async(_cleanup_sent_messages(days if days is not None else settings.OUTBOX_RETENTION_DAYS))
