from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.db import get_db
from market.schemas.contracts import SaleDeploy, SaleDeployOut, SaleOut, TokenDeploy, TokenDeployOut
from market.services.auth import Signer, get_signer
from market.services.context import CallContext, get_block_timestamp
from market.services.deployments import deploy_sale, deploy_token, get_sale_contract
from market.services.execution import receipt_dict

router = APIRouter()


@router.post("/contracts/sale", response_model=SaleDeployOut)
async def create_sale(
    payload: SaleDeploy,
    signer: Signer = Depends(get_signer),
    now: int = Depends(get_block_timestamp),
    db: AsyncSession = Depends(get_db),
) -> SaleDeployOut:
    ctx = CallContext(caller=signer.address, timestamp=now)
    res = await deploy_sale(
        db, ctx, fee_recipient=payload.fee_recipient, fee_basis_points=payload.fee_basis_points
    )
    sale = res.result
    out = SaleDeployOut(
        address=sale.address,
        deployer=sale.deployer,
        fee_recipient=sale.fee_recipient,
        fee_basis_points=sale.fee_basis_points,
        receipt=receipt_dict(res.receipt),
    )
    await db.commit()
    return out


@router.get("/contracts/sale/{address}", response_model=SaleOut)
async def read_sale(address: str, db: AsyncSession = Depends(get_db)) -> SaleOut:
    sale = await get_sale_contract(db, address)
    return SaleOut(
        address=sale.address,
        deployer=sale.deployer,
        fee_recipient=sale.fee_recipient,
        fee_basis_points=sale.fee_basis_points,
    )


@router.post("/contracts/token", response_model=TokenDeployOut)
async def create_token(
    payload: TokenDeploy,
    signer: Signer = Depends(get_signer),
    now: int = Depends(get_block_timestamp),
    db: AsyncSession = Depends(get_db),
) -> TokenDeployOut:
    ctx = CallContext(caller=signer.address, timestamp=now)
    res = await deploy_token(db, ctx, name=payload.name, symbol=payload.symbol)
    token = res.result
    out = TokenDeployOut(
        address=token.address,
        name=token.name,
        symbol=token.symbol,
        minter=token.minter,
        receipt=receipt_dict(res.receipt),
    )
    await db.commit()
    return out
