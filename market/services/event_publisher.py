"""
Delivery of outbox events to the configured webhook.

Each claimed event is posted once per attempt. Retryable failures go back
to ``pending`` with a backoff; permanent failures, or running out of
attempts, leave the event ``failed``.
"""
from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from market.core.config import settings
from market.models.outbox import OutboxEvent
from market.services.http_client import EventHttpClient
from market.services.retry import next_attempt_at

log = logging.getLogger(__name__)


def event_envelope(ev: OutboxEvent) -> dict:
    return {
        "id": ev.id,
        "type": ev.event_type,
        "aggregate_type": ev.aggregate_type,
        "aggregate_id": ev.aggregate_id,
        "payload": ev.payload,
    }


async def _finish(db: AsyncSession, ev: OutboxEvent, lease_id: str, **values) -> bool:
    result = await db.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id == ev.id, OutboxEvent.lease_id == lease_id)
        .values(lease_id=None, lease_expires_at=None, **values)
    )
    if result.rowcount == 0:
        # lease lost; do not overwrite
        await db.rollback()
        return False
    await db.commit()
    return True


async def publish_outbox_event(
    db: AsyncSession,
    outbox_id: str,
    lease_id: str,
    *,
    client: EventHttpClient | None,
    webhook_url: str | None = None,
    max_attempts: int | None = None,
) -> str:
    """Publish one leased event; returns the status it ends in (or ``skipped``)."""
    max_attempts = max_attempts or settings.outbox_max_attempts

    stmt = select(OutboxEvent).where(OutboxEvent.id == outbox_id).execution_options(populate_existing=True)
    ev = (await db.execute(stmt)).scalar_one_or_none()
    if ev is None or ev.lease_id != lease_id or ev.status != "processing":
        # Another dispatcher reclaimed it or it's already done.
        return "skipped"

    if not webhook_url or client is None:
        log.debug("no event webhook configured; marking %s done", ev.id)
        ok = await _finish(db, ev, lease_id, status="done", processed_at=func.now())
        return "done" if ok else "skipped"

    res = await client.post_json(
        url=webhook_url,
        json_body=event_envelope(ev),
        headers={"Idempotency-Key": ev.id},
        request_id=ev.id,
    )

    if res.ok:
        ok = await _finish(db, ev, lease_id, status="done", processed_at=func.now(), last_error=None)
        log.info("event published: id=%s type=%s", ev.id, ev.event_type)
        return "done" if ok else "skipped"

    error = f"{res.error_code}: {res.error_message}"
    if not res.retryable or ev.attempts >= max_attempts:
        log.warning("event failed permanently: id=%s attempts=%s error=%s", ev.id, ev.attempts, error)
        ok = await _finish(db, ev, lease_id, status="failed", processing_started_at=None, last_error=error)
        return "failed" if ok else "skipped"

    log.warning("event publish failed, will retry: id=%s attempts=%s error=%s", ev.id, ev.attempts, error)
    ok = await _finish(
        db, ev, lease_id,
        status="pending",
        processing_started_at=None,
        last_error=error,
        next_attempt_at=next_attempt_at(ev.attempts),
    )
    return "pending" if ok else "skipped"
