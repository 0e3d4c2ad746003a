from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.db import get_db
from market.core.types import UINT256_MAX
from market.schemas.common import ReceiptOut
from market.schemas.token import ApproveRequest, MintRequest, OperatorApprovalRequest, TokenOwnerOut
from market.services import tokens
from market.services.auth import Signer, get_signer
from market.services.context import CallContext, get_block_timestamp
from market.services.execution import receipt_dict

router = APIRouter()


@router.post("/tokens/{token}/mint", response_model=ReceiptOut)
async def mint(
    token: str,
    payload: MintRequest,
    signer: Signer = Depends(get_signer),
    now: int = Depends(get_block_timestamp),
    db: AsyncSession = Depends(get_db),
) -> ReceiptOut:
    ctx = CallContext(caller=signer.address, timestamp=now)
    res = await tokens.mint(db, ctx, token_address=token, to=payload.to, token_id=payload.token_id)
    out = ReceiptOut(**receipt_dict(res.receipt))
    await db.commit()
    return out


@router.post("/tokens/{token}/approval-for-all", response_model=ReceiptOut)
async def set_approval_for_all(
    token: str,
    payload: OperatorApprovalRequest,
    signer: Signer = Depends(get_signer),
    now: int = Depends(get_block_timestamp),
    db: AsyncSession = Depends(get_db),
) -> ReceiptOut:
    ctx = CallContext(caller=signer.address, timestamp=now)
    res = await tokens.set_approval_for_all(
        db, ctx, token_address=token, operator=payload.operator, approved=payload.approved
    )
    out = ReceiptOut(**receipt_dict(res.receipt))
    await db.commit()
    return out


@router.post("/tokens/{token}/{token_id}/approve", response_model=ReceiptOut)
async def approve(
    token: str,
    payload: ApproveRequest,
    token_id: int = Path(ge=0, le=UINT256_MAX),
    signer: Signer = Depends(get_signer),
    now: int = Depends(get_block_timestamp),
    db: AsyncSession = Depends(get_db),
) -> ReceiptOut:
    ctx = CallContext(caller=signer.address, timestamp=now)
    res = await tokens.approve(db, ctx, token_address=token, spender=payload.spender, token_id=token_id)
    out = ReceiptOut(**receipt_dict(res.receipt))
    await db.commit()
    return out


@router.get("/tokens/{token}/{token_id}", response_model=TokenOwnerOut)
async def owner_of(
    token: str,
    token_id: int = Path(ge=0, le=UINT256_MAX),
    db: AsyncSession = Depends(get_db),
) -> TokenOwnerOut:
    contract = await tokens.load_token_contract(db, token)
    return TokenOwnerOut(
        contract=contract.address,
        token_id=token_id,
        owner=await contract.owner_of(token_id),
        approved=await contract.get_approved(token_id),
    )
