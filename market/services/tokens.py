"""
Token collaborator.

The Listing Registry and the Settlement Engine only rely on the
``TokenCollaborator`` protocol. ``SqlTokenContract`` is the in-database
mock NFT contract that implements it for dev and test environments.
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.errors import (
    ContractNotFound,
    NotMinter,
    NotTokenOwnerOrApproved,
    TokenAlreadyMinted,
    TokenNotFound,
)
from market.core.ids import normalize_address
from market.models.token import TokenContract, TokenOperatorApproval, TokenOwnership
from market.services.context import CallContext
from market.services.execution import CallResult, execute_call

log = logging.getLogger(__name__)


class TokenCollaborator(Protocol):
    address: str

    async def owner_of(self, token_id: int) -> str: ...

    async def get_approved(self, token_id: int) -> str | None: ...

    async def is_approved_for_all(self, owner: str, operator: str) -> bool: ...

    async def transfer_from(self, operator: str, sender: str, to: str, token_id: int) -> None: ...


TokenResolver = Callable[[AsyncSession, str], Awaitable[TokenCollaborator]]


class SqlTokenContract:
    def __init__(self, db: AsyncSession, contract: TokenContract) -> None:
        self.db = db
        self.contract = contract
        self.address = contract.address

    async def _ownership(self, token_id: int, *, for_update: bool = False) -> TokenOwnership:
        stmt = select(TokenOwnership).where(
            TokenOwnership.contract_address == self.address,
            TokenOwnership.token_id == token_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        row = (await self.db.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise TokenNotFound(f"Token {token_id} does not exist", contract=self.address, token_id=token_id)
        return row

    async def owner_of(self, token_id: int) -> str:
        return (await self._ownership(token_id)).owner

    async def get_approved(self, token_id: int) -> str | None:
        return (await self._ownership(token_id)).approved

    async def is_approved_for_all(self, owner: str, operator: str) -> bool:
        stmt = select(TokenOperatorApproval.approved).where(
            TokenOperatorApproval.contract_address == self.address,
            TokenOperatorApproval.owner == normalize_address(owner),
            TokenOperatorApproval.operator == normalize_address(operator),
        )
        return bool((await self.db.execute(stmt)).scalar_one_or_none())

    async def transfer_from(self, operator: str, sender: str, to: str, token_id: int) -> None:
        operator = normalize_address(operator)
        sender = normalize_address(sender)
        row = await self._ownership(token_id, for_update=True)

        if row.owner != sender:
            raise NotTokenOwnerOrApproved(
                f"{sender} does not own token {token_id}", contract=self.address, token_id=token_id
            )
        allowed = (
            operator == sender
            or row.approved == operator
            or await self.is_approved_for_all(sender, operator)
        )
        if not allowed:
            raise NotTokenOwnerOrApproved(
                f"{operator} is not approved for token {token_id}", contract=self.address, token_id=token_id
            )

        row.owner = normalize_address(to)
        row.approved = None
        row.updated_by = operator
        await self.db.flush()

    async def mint(self, caller: str, to: str, token_id: int) -> TokenOwnership:
        caller = normalize_address(caller)
        if caller != self.contract.minter:
            raise NotMinter(f"{caller} cannot mint on {self.address}", contract=self.address)

        stmt = select(TokenOwnership).where(
            TokenOwnership.contract_address == self.address,
            TokenOwnership.token_id == token_id,
        )
        if (await self.db.execute(stmt)).scalar_one_or_none() is not None:
            raise TokenAlreadyMinted(f"Token {token_id} already minted", contract=self.address, token_id=token_id)

        row = TokenOwnership(
            contract_address=self.address,
            token_id=token_id,
            owner=normalize_address(to),
            approved=None,
            created_by=caller,
            updated_by=caller,
        )
        self.db.add(row)
        await self.db.flush()
        return row

    async def approve(self, caller: str, spender: str | None, token_id: int) -> None:
        caller = normalize_address(caller)
        row = await self._ownership(token_id, for_update=True)
        if row.owner != caller and not await self.is_approved_for_all(row.owner, caller):
            raise NotTokenOwnerOrApproved(
                f"{caller} cannot approve token {token_id}", contract=self.address, token_id=token_id
            )
        row.approved = normalize_address(spender) if spender else None
        row.updated_by = caller
        await self.db.flush()

    async def set_approval_for_all(self, caller: str, operator: str, approved: bool) -> None:
        caller = normalize_address(caller)
        operator = normalize_address(operator)
        stmt = select(TokenOperatorApproval).where(
            TokenOperatorApproval.contract_address == self.address,
            TokenOperatorApproval.owner == caller,
            TokenOperatorApproval.operator == operator,
        ).with_for_update()
        row = (await self.db.execute(stmt)).scalar_one_or_none()
        if row is None:
            row = TokenOperatorApproval(
                contract_address=self.address,
                owner=caller,
                operator=operator,
                approved=approved,
                created_by=caller,
                updated_by=caller,
            )
            self.db.add(row)
        else:
            row.approved = approved
            row.updated_by = caller
        await self.db.flush()


async def load_token_contract(db: AsyncSession, address: str) -> SqlTokenContract:
    stmt = select(TokenContract).where(TokenContract.address == normalize_address(address))
    contract = (await db.execute(stmt)).scalar_one_or_none()
    if contract is None:
        raise ContractNotFound(f"Token contract {address} not found", address=address)
    return SqlTokenContract(db, contract)


def _token_lock_key(token_address: str, token_id: int) -> tuple:
    return ("token", normalize_address(token_address), int(token_id))


async def mint(db: AsyncSession, ctx: CallContext, *, token_address: str, to: str, token_id: int) -> CallResult[None]:
    token_address = normalize_address(token_address)

    async def _mint() -> None:
        token = await load_token_contract(db, token_address)
        await token.mint(ctx.caller, to, token_id)

    res = await execute_call(
        db, ctx, to=token_address, method="mint", fn=_mint, lock_key=_token_lock_key(token_address, token_id)
    )
    log.info("token minted: contract=%s token_id=%s to=%s", token_address, token_id, normalize_address(to))
    return res


async def approve(
    db: AsyncSession, ctx: CallContext, *, token_address: str, spender: str | None, token_id: int
) -> CallResult[None]:
    token_address = normalize_address(token_address)

    async def _approve() -> None:
        token = await load_token_contract(db, token_address)
        await token.approve(ctx.caller, spender, token_id)

    return await execute_call(
        db, ctx, to=token_address, method="approve", fn=_approve, lock_key=_token_lock_key(token_address, token_id)
    )


async def set_approval_for_all(
    db: AsyncSession, ctx: CallContext, *, token_address: str, operator: str, approved: bool
) -> CallResult[None]:
    token_address = normalize_address(token_address)

    async def _set() -> None:
        token = await load_token_contract(db, token_address)
        await token.set_approval_for_all(ctx.caller, operator, approved)

    res = await execute_call(
        db, ctx, to=token_address, method="setApprovalForAll", fn=_set,
        lock_key=("operator", token_address, normalize_address(ctx.caller)),
    )
    log.info(
        "operator approval set: contract=%s owner=%s operator=%s approved=%s",
        token_address, normalize_address(ctx.caller), normalize_address(operator), approved,
    )
    return res
