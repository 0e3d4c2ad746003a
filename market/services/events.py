from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from market.models.outbox import OutboxEvent


def _jsonable(value):
    # uint256 amounts travel as decimal strings
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int):
        return str(value)
    return value


def emit_event(
    db: AsyncSession,
    *,
    aggregate_type: str,
    aggregate_id: str,
    event_type: str,
    payload: dict,
) -> OutboxEvent:
    ev = OutboxEvent(
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        event_type=event_type,
        payload={k: _jsonable(v) for k, v in payload.items()},
        status="pending",
    )
    db.add(ev)
    return ev


def listing_aggregate_id(sale_address: str, asset_contract: str, asset_id: int) -> str:
    return f"{sale_address}:{asset_contract}:{asset_id}"
