from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.db import get_db
from market.schemas.account import AccountOut, DevSignerCreate, DevSignerOut, FundRequest
from market.services import ledger
from market.services.accounts import create_dev_signer, fund_account
from market.services.internal_admin import require_internal_admin

router = APIRouter()


@router.post("/accounts", response_model=DevSignerOut, dependencies=[Depends(require_internal_admin)])
async def create_account(payload: DevSignerCreate, db: AsyncSession = Depends(get_db)) -> DevSignerOut:
    signer = await create_dev_signer(db, label=payload.label, balance=payload.balance)
    out = DevSignerOut(
        address=signer.account.address,
        label=signer.account.label,
        balance=signer.account.balance,
        api_key=signer.plain_key,
    )
    await db.commit()
    return out


@router.post(
    "/accounts/{address}/fund",
    response_model=AccountOut,
    dependencies=[Depends(require_internal_admin)],
)
async def fund(address: str, payload: FundRequest, db: AsyncSession = Depends(get_db)) -> AccountOut:
    account = await fund_account(db, address, payload.amount)
    out = AccountOut(address=account.address, balance=account.balance, is_contract=account.is_contract)
    await db.commit()
    return out


@router.get("/accounts/{address}", response_model=AccountOut)
async def get_account(address: str, db: AsyncSession = Depends(get_db)) -> AccountOut:
    account = await ledger.get_account(db, address)
    return AccountOut(address=account.address, balance=account.balance, is_contract=account.is_contract)
