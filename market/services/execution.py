"""
Atomic execution of state-changing calls.

A call runs inside a savepoint while holding the lock for its key. If the
call body raises, the savepoint is rolled back and nothing it staged
(registry rows, balances, token state, outbox events) survives. A committed
call pays the execution fee and leaves a ``Transaction`` receipt.

The key lock belongs to the session, not to the call: it is released when
the session's outer transaction ends (commit, rollback or close), so a
second call on the same key cannot read state the first has not committed.
A session that already holds a key re-enters it without waiting.
"""
from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Hashable, TypeVar

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from market.core.config import settings
from market.core.errors import InsufficientFunds, MarketError
from market.models.transaction import Transaction
from market.services import ledger
from market.services.context import CallContext

log = logging.getLogger(__name__)

T = TypeVar("T")

HELD_LOCKS_KEY = "market.call_locks"


class KeyedLocks:
    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[Hashable, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


call_locks = KeyedLocks()


def held_call_locks(session: Session) -> dict[Hashable, asyncio.Lock]:
    return session.info.setdefault(HELD_LOCKS_KEY, {})


def release_call_locks(session: Session) -> None:
    held = session.info.pop(HELD_LOCKS_KEY, None)
    for lock in (held or {}).values():
        lock.release()


@event.listens_for(Session, "after_transaction_end")
def _release_on_transaction_end(session: Session, transaction) -> None:
    # only the outermost session transaction; savepoints keep the locks
    if transaction.parent is None:
        release_call_locks(session)


async def acquire_call_lock(db: AsyncSession, key: Hashable) -> None:
    held = held_call_locks(db.sync_session)
    if key in held:
        return
    lock = call_locks.get(key)
    await lock.acquire()
    held[key] = lock


@dataclass(frozen=True)
class Receipt:
    tx_hash: str
    sender: str
    to: str | None
    method: str
    value: int
    execution_fee: int
    block_timestamp: int


@dataclass(frozen=True)
class CallResult(Generic[T]):
    result: T
    receipt: Receipt


async def execute_call(
    db: AsyncSession,
    ctx: CallContext,
    *,
    to: str | None,
    method: str,
    fn: Callable[[], Awaitable[T]],
    lock_key: Hashable | None = None,
) -> CallResult[T]:
    fee = settings.execution_fee_wei
    await acquire_call_lock(db, lock_key if lock_key is not None else (to, method))

    try:
        async with db.begin_nested():
            sender = await ledger.get_account(db, ctx.caller, for_update=True)
            if sender.balance < ctx.value + fee:
                raise InsufficientFunds(
                    f"Account {sender.address} cannot cover value + execution fee",
                    address=sender.address,
                    balance=sender.balance,
                    required=ctx.value + fee,
                )

            result = await fn()

            await ledger.debit(db, ctx.caller, fee)
            tx = Transaction(
                sender=sender.address,
                to=to,
                method=method,
                value=ctx.value,
                execution_fee=fee,
                block_timestamp=ctx.timestamp,
            )
            db.add(tx)
            await db.flush()
    except MarketError as e:
        log.warning("call reverted: method=%s to=%s caller=%s error=%s", method, to, ctx.caller, e.code)
        raise
    finally:
        # no outer transaction to end means nothing else will release the locks
        if not db.in_transaction():
            release_call_locks(db.sync_session)

    receipt = Receipt(
        tx_hash=tx.tx_hash,
        sender=tx.sender,
        to=to,
        method=method,
        value=ctx.value,
        execution_fee=fee,
        block_timestamp=ctx.timestamp,
    )
    log.info("call executed: method=%s to=%s caller=%s tx=%s", method, to, ctx.caller, tx.tx_hash)
    return CallResult(result=result, receipt=receipt)


def receipt_dict(receipt: Receipt) -> dict[str, Any]:
    return {
        "tx_hash": receipt.tx_hash,
        "sender": receipt.sender,
        "to": receipt.to,
        "method": receipt.method,
        "value": str(receipt.value),
        "execution_fee": str(receipt.execution_fee),
        "block_timestamp": receipt.block_timestamp,
    }
