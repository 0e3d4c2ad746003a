"""
Balances of the simulated execution environment.

Every function works inside the caller's transaction and only flushes;
committing (or rolling back) is up to whoever owns the call.
"""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.errors import AccountNotFound, InsufficientFunds, MarketError, PaymentFailed
from market.core.ids import gen_address, normalize_address
from market.models.account import Account

log = logging.getLogger(__name__)


async def find_account(db: AsyncSession, address: str, *, for_update: bool = False) -> Account | None:
    stmt = select(Account).where(Account.address == normalize_address(address))
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_account(db: AsyncSession, address: str, *, for_update: bool = False) -> Account:
    account = await find_account(db, address, for_update=for_update)
    if account is None:
        raise AccountNotFound(f"Account {address} not found", address=address)
    return account


async def get_balance(db: AsyncSession, address: str) -> int:
    account = await find_account(db, address)
    return account.balance if account else 0


async def create_account(
    db: AsyncSession,
    *,
    address: str | None = None,
    label: str | None = None,
    balance: int = 0,
    is_contract: bool = False,
    accepts_payments: bool = True,
    created_by: str = "internal",
) -> Account:
    account = Account(
        address=normalize_address(address) if address else gen_address(),
        label=label,
        balance=balance,
        is_contract=is_contract,
        accepts_payments=accepts_payments,
        created_by=created_by,
        updated_by=created_by,
    )
    db.add(account)
    await db.flush()
    return account


async def credit(db: AsyncSession, address: str, amount: int) -> Account:
    # Any address can receive value; unseen addresses get a plain account
    account = await find_account(db, address, for_update=True)
    if account is None:
        account = await create_account(db, address=address)
    account.balance = account.balance + amount
    await db.flush()
    return account


async def debit(db: AsyncSession, address: str, amount: int) -> Account:
    account = await get_account(db, address, for_update=True)
    if account.balance < amount:
        raise InsufficientFunds(
            f"Account {account.address} cannot cover {amount} wei",
            address=account.address,
            balance=account.balance,
            required=amount,
        )
    account.balance = account.balance - amount
    await db.flush()
    return account


async def transfer_value(
    db: AsyncSession,
    sender: str,
    recipient: str,
    amount: int,
    *,
    rejected_error: type[MarketError] = PaymentFailed,
) -> None:
    """
    Move ``amount`` wei from ``sender`` to ``recipient``.

    A recipient that does not accept payments raises ``rejected_error``.
    """
    target = await find_account(db, recipient, for_update=True)
    if target is not None and not target.accepts_payments:
        raise rejected_error(
            f"Recipient {target.address} does not accept payments",
            recipient=target.address,
            amount=amount,
        )

    await debit(db, sender, amount)
    await credit(db, recipient, amount)
