import hashlib
import json
from fastapi import Header, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from market.models.idempotency import IdempotencyKey
from market.services.auth import Signer


def _hash_request(path: str, body: dict) -> str:
    # Stable hash to detect conflicts (same idempotency key but different request)
    raw = json.dumps({"path": path, "body": body}, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")
    return "sha256:" + hashlib.sha256(raw).hexdigest()


async def optional_idempotency_key(idempotency_key: str | None = Header(default=None)) -> str | None:
    if idempotency_key is not None and len(idempotency_key) > 200:
        raise HTTPException(status_code=400, detail="Idempotency-Key too long")
    return idempotency_key


async def find_idempotent_response(
    *,
    db: AsyncSession,
    signer: Signer,
    idempotency_key: str,
    request_path: str,
    request_body: dict,
) -> dict | None:
    """
    Stored response of an earlier call made with the same key, if any.

    Reusing a key for a different request is a 409.
    """
    req_hash = _hash_request(request_path, request_body)

    stmt = select(IdempotencyKey).where(
        IdempotencyKey.account_address == signer.address,
        IdempotencyKey.key == idempotency_key,
    )
    existing = (await db.execute(stmt)).scalar_one_or_none()
    if existing is None:
        return None
    if existing.request_hash != req_hash:
        raise HTTPException(status_code=409, detail="Idempotency-Key reuse with different request")
    return existing.response


async def store_idempotent_response(
    *,
    db: AsyncSession,
    signer: Signer,
    idempotency_key: str,
    request_path: str,
    request_body: dict,
    response: dict,
) -> None:
    # Stored in the same transaction as the call it answers; a reverted call stores nothing
    row = IdempotencyKey(
        account_address=signer.address,
        key=idempotency_key,
        request_hash=_hash_request(request_path, request_body),
        response=response,
    )
    db.add(row)
    await db.flush()
