from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.config import settings
from market.core.errors import ContractNotFound, InvalidFee
from market.core.ids import normalize_address
from market.models.sale_contract import SaleContract
from market.models.token import TokenContract
from market.services import ledger
from market.services.context import CallContext
from market.services.execution import CallResult, execute_call

log = logging.getLogger(__name__)


async def get_sale_contract(db: AsyncSession, address: str) -> SaleContract:
    stmt = select(SaleContract).where(SaleContract.address == normalize_address(address))
    sale = (await db.execute(stmt)).scalar_one_or_none()
    if sale is None:
        raise ContractNotFound(f"Sale contract {address} not found", address=address)
    return sale


async def deploy_sale(
    db: AsyncSession,
    ctx: CallContext,
    *,
    fee_recipient: str,
    fee_basis_points: int,
) -> CallResult[SaleContract]:
    """Deploy a Sale registry whose fee configuration is fixed for its lifetime."""

    async def _deploy() -> SaleContract:
        if fee_basis_points < 0 or fee_basis_points > settings.fee_denominator:
            raise InvalidFee(
                f"fee_basis_points must be within 0..{settings.fee_denominator}",
                fee_basis_points=fee_basis_points,
            )
        account = await ledger.create_account(
            db, label="Sale", is_contract=True, accepts_payments=True, created_by=ctx.caller
        )
        sale = SaleContract(
            address=account.address,
            deployer=ctx.caller,
            fee_recipient=normalize_address(fee_recipient),
            fee_basis_points=fee_basis_points,
            created_by=ctx.caller,
            updated_by=ctx.caller,
        )
        db.add(sale)
        await db.flush()
        return sale

    res = await execute_call(db, ctx, to=None, method="deploySale", fn=_deploy, lock_key=("deploy", ctx.caller))
    log.info("sale deployed: address=%s fee_bps=%s", res.result.address, fee_basis_points)
    return res


async def deploy_token(
    db: AsyncSession,
    ctx: CallContext,
    *,
    name: str = "MockNFT",
    symbol: str = "MNFT",
) -> CallResult[TokenContract]:
    async def _deploy() -> TokenContract:
        # token contracts have no payable receive hook
        account = await ledger.create_account(
            db, label=name, is_contract=True, accepts_payments=False, created_by=ctx.caller
        )
        token = TokenContract(
            address=account.address,
            name=name,
            symbol=symbol,
            minter=ctx.caller,
            created_by=ctx.caller,
            updated_by=ctx.caller,
        )
        db.add(token)
        await db.flush()
        return token

    res = await execute_call(db, ctx, to=None, method="deployToken", fn=_deploy, lock_key=("deploy", ctx.caller))
    log.info("token deployed: address=%s name=%s", res.result.address, name)
    return res
