from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from market.core.config import settings
from market.core.security import generate_api_key
from market.models.account import Account
from market.models.api_key import ApiKey
from market.services import ledger

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DevSigner:
    account: Account
    api_key_id: str
    plain_key: str


async def create_dev_signer(
    db: AsyncSession,
    *,
    label: str | None = None,
    balance: int | None = None,
    created_by: str = "internal",
) -> DevSigner:
    """
    Create a pre-funded externally owned account plus the API key that signs for it.

    The plain key is only ever returned here; the database keeps its hash.
    """
    account = await ledger.create_account(
        db,
        label=label,
        balance=settings.dev_account_balance_wei if balance is None else balance,
        created_by=created_by,
    )

    key = generate_api_key()
    row = ApiKey(
        account_address=account.address,
        key_prefix=key.prefix,
        key_hash=key.hashed,
        is_active=True,
    )
    db.add(row)
    await db.flush()

    log.info("dev signer created: address=%s label=%s", account.address, label)
    return DevSigner(account=account, api_key_id=row.id, plain_key=key.plain)


async def fund_account(db: AsyncSession, address: str, amount: int) -> Account:
    account = await ledger.credit(db, address, amount)
    log.info("account funded: address=%s amount=%s", account.address, amount)
    return account
