import asyncio
import logging
from sqlalchemy import update
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from worker.celery_app import celery
from market.core.config import settings
import market.models  # noqa: F401  # ensures Models are registered
from market.models.outbox import OutboxEvent
from market.services.event_publisher import publish_outbox_event
from market.services.http_client import EventHttpClient

log = logging.getLogger(__name__)


async def _process_outbox_event(outbox_id: str, lease_id: str) -> str:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    client = EventHttpClient() if settings.event_webhook_url else None

    try:
        async with Session() as db:
            try:
                return await publish_outbox_event(
                    db, outbox_id, lease_id, client=client, webhook_url=settings.event_webhook_url
                )
            except Exception as e:
                log.exception("outbox event %s crashed", outbox_id)
                # Return to pending if lease matches; store error
                await db.rollback()
                await db.execute(
                    update(OutboxEvent)
                    .where(OutboxEvent.id == outbox_id, OutboxEvent.lease_id == lease_id)
                    .values(
                        status="pending",
                        lease_id=None,
                        lease_expires_at=None,
                        processing_started_at=None,
                        last_error=f"{type(e).__name__}: {e}",
                    )
                )
                await db.commit()
                return "pending"
    finally:
        if client is not None:
            await client.aclose()
        await engine.dispose()


@celery.task(name="worker.tasks.process_outbox_event", bind=True, max_retries=5)
def process_outbox_event(self, outbox_id: str, lease_id: str) -> str:
    return asyncio.run(_process_outbox_event(outbox_id, lease_id))
