from fastapi import APIRouter, Depends, Path, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.db import get_db
from market.core.types import UINT256_MAX
from market.models.listing import Listing
from market.schemas.listing import (
    BuyItemRequest,
    CancelOut,
    ListingOut,
    ListItemOut,
    ListItemRequest,
    SettlementOut,
)
from market.services.auth import Signer, get_signer
from market.services.context import CallContext, get_block_timestamp
from market.services.execution import receipt_dict
from market.services.idempotency import (
    find_idempotent_response,
    optional_idempotency_key,
    store_idempotent_response,
)
from market.services.listings import cancel_listing, get_listing, list_item, list_listings
from market.services.settlement import buy_item

router = APIRouter()


def _listing_out(listing: Listing) -> ListingOut:
    return ListingOut(
        sale=listing.sale_address,
        asset_contract=listing.asset_contract,
        asset_id=listing.asset_id,
        seller=listing.seller,
        price=listing.price,
        expires_at=listing.expires_at,
    )


@router.post("/sales/{sale}/listings", response_model=ListItemOut)
async def list_item_endpoint(
    sale: str,
    payload: ListItemRequest,
    request: Request,
    signer: Signer = Depends(get_signer),
    idempotency_key: str | None = Depends(optional_idempotency_key),
    now: int = Depends(get_block_timestamp),
    db: AsyncSession = Depends(get_db),
) -> ListItemOut:
    body_dict = payload.model_dump()
    if idempotency_key:
        stored = await find_idempotent_response(
            db=db, signer=signer, idempotency_key=idempotency_key,
            request_path=str(request.url.path), request_body=body_dict,
        )
        if stored is not None:
            # Safe retry: return stored response
            return ListItemOut(**stored)

    ctx = CallContext(caller=signer.address, timestamp=now)
    res = await list_item(
        db,
        ctx,
        sale,
        asset_contract=payload.asset_contract,
        asset_id=payload.asset_id,
        price=payload.price,
        expires_at=payload.expires_at,
    )
    resp = ListItemOut(
        **_listing_out(res.result).model_dump(),
        receipt=receipt_dict(res.receipt),
    ).model_dump()

    if idempotency_key:
        await store_idempotent_response(
            db=db, signer=signer, idempotency_key=idempotency_key,
            request_path=str(request.url.path), request_body=body_dict, response=resp,
        )

    await db.commit()
    return ListItemOut(**resp)


@router.get("/sales/{sale}/listings", response_model=list[ListingOut])
async def list_listings_endpoint(
    sale: str,
    seller: str | None = Query(default=None),
    active_only: bool = Query(default=False),
    now: int = Depends(get_block_timestamp),
    db: AsyncSession = Depends(get_db),
) -> list[ListingOut]:
    rows = await list_listings(db, sale, seller=seller, active_at=now if active_only else None)
    return [_listing_out(r) for r in rows]


@router.get("/sales/{sale}/listings/{asset_contract}/{asset_id}", response_model=ListingOut)
async def get_listing_endpoint(
    sale: str,
    asset_contract: str,
    asset_id: int = Path(ge=0, le=UINT256_MAX),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    return _listing_out(await get_listing(db, sale, asset_contract, asset_id))


@router.delete("/sales/{sale}/listings/{asset_contract}/{asset_id}", response_model=CancelOut)
async def cancel_listing_endpoint(
    sale: str,
    asset_contract: str,
    asset_id: int = Path(ge=0, le=UINT256_MAX),
    signer: Signer = Depends(get_signer),
    now: int = Depends(get_block_timestamp),
    db: AsyncSession = Depends(get_db),
) -> CancelOut:
    ctx = CallContext(caller=signer.address, timestamp=now)
    res = await cancel_listing(db, ctx, sale, asset_contract=asset_contract, asset_id=asset_id)
    out = CancelOut(cancelled=True, receipt=receipt_dict(res.receipt))
    await db.commit()
    return out


@router.post("/sales/{sale}/listings/{asset_contract}/{asset_id}/buy", response_model=SettlementOut)
async def buy_item_endpoint(
    sale: str,
    asset_contract: str,
    payload: BuyItemRequest,
    request: Request,
    asset_id: int = Path(ge=0, le=UINT256_MAX),
    signer: Signer = Depends(get_signer),
    idempotency_key: str | None = Depends(optional_idempotency_key),
    now: int = Depends(get_block_timestamp),
    db: AsyncSession = Depends(get_db),
) -> SettlementOut:
    body_dict = payload.model_dump()
    if idempotency_key:
        stored = await find_idempotent_response(
            db=db, signer=signer, idempotency_key=idempotency_key,
            request_path=str(request.url.path), request_body=body_dict,
        )
        if stored is not None:
            return SettlementOut(**stored)

    ctx = CallContext(caller=signer.address, timestamp=now, value=payload.value)
    res = await buy_item(db, ctx, sale, asset_contract=asset_contract, asset_id=asset_id)
    s = res.result
    resp = SettlementOut(
        sale=s.sale,
        asset_contract=s.asset_contract,
        asset_id=s.asset_id,
        seller=s.seller,
        buyer=s.buyer,
        price=s.price,
        fee_recipient=s.fee_recipient,
        fee=s.fee,
        seller_amount=s.seller_amount,
        receipt=receipt_dict(res.receipt),
    ).model_dump()

    if idempotency_key:
        await store_idempotent_response(
            db=db, signer=signer, idempotency_key=idempotency_key,
            request_path=str(request.url.path), request_body=body_dict, response=resp,
        )

    await db.commit()
    return SettlementOut(**resp)
