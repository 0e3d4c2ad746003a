from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.errors import (
    ContractNotFound,
    InvalidExpiration,
    InvalidPrice,
    ListingNotFound,
    NotOwnerOrNotApproved,
    NotSeller,
    TokenNotFound,
)
from market.core.ids import normalize_address
from market.core.types import INT64_MAX
from market.models.listing import Listing
from market.services.context import CallContext
from market.services.deployments import get_sale_contract
from market.services.events import emit_event, listing_aggregate_id
from market.services.execution import CallResult, execute_call
from market.services.tokens import TokenResolver, load_token_contract

log = logging.getLogger(__name__)


def listing_lock_key(sale_address: str, asset_contract: str, asset_id: int) -> tuple:
    return ("listing", normalize_address(sale_address), normalize_address(asset_contract), int(asset_id))


async def find_listing(
    db: AsyncSession,
    sale_address: str,
    asset_contract: str,
    asset_id: int,
    *,
    for_update: bool = False,
) -> Listing | None:
    stmt = select(Listing).where(
        Listing.sale_address == normalize_address(sale_address),
        Listing.asset_contract == normalize_address(asset_contract),
        Listing.asset_id == asset_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_listing(db: AsyncSession, sale_address: str, asset_contract: str, asset_id: int) -> Listing:
    listing = await find_listing(db, sale_address, asset_contract, asset_id)
    if listing is None:
        raise ListingNotFound(
            f"No listing for token {asset_id} of {asset_contract}",
            asset_contract=asset_contract,
            asset_id=asset_id,
        )
    return listing


async def list_listings(
    db: AsyncSession,
    sale_address: str,
    *,
    seller: str | None = None,
    active_at: int | None = None,
) -> list[Listing]:
    """
    Listings stored in a Sale registry.

    Expired listings are kept until sold over or cancelled; pass ``active_at``
    to leave out those whose expiration is before that timestamp.
    """
    await get_sale_contract(db, sale_address)

    stmt = select(Listing).where(Listing.sale_address == normalize_address(sale_address))
    if seller:
        stmt = stmt.where(Listing.seller == normalize_address(seller))
    if active_at is not None:
        stmt = stmt.where(Listing.expires_at >= active_at)
    stmt = stmt.order_by(Listing.created_at.asc(), Listing.id.asc())
    return list((await db.execute(stmt)).scalars().all())


async def _require_owner_and_approved(
    db: AsyncSession,
    resolve_token: TokenResolver,
    *,
    sale_address: str,
    caller: str,
    asset_contract: str,
    asset_id: int,
) -> None:
    try:
        token = await resolve_token(db, asset_contract)
        owner = await token.owner_of(asset_id)
        if owner != caller:
            raise NotOwnerOrNotApproved(
                f"{caller} does not own token {asset_id}", asset_contract=asset_contract, asset_id=asset_id
            )
        approved = (
            await token.is_approved_for_all(owner, sale_address)
            or await token.get_approved(asset_id) == sale_address
        )
    except (ContractNotFound, TokenNotFound) as e:
        raise NotOwnerOrNotApproved(e.message, asset_contract=asset_contract, asset_id=asset_id) from e

    if not approved:
        raise NotOwnerOrNotApproved(
            f"Sale {sale_address} is not approved to transfer token {asset_id}",
            asset_contract=asset_contract,
            asset_id=asset_id,
        )


async def list_item(
    db: AsyncSession,
    ctx: CallContext,
    sale_address: str,
    *,
    asset_contract: str,
    asset_id: int,
    price: int,
    expires_at: int,
    resolve_token: TokenResolver = load_token_contract,
) -> CallResult[Listing]:
    """
    Register (or replace) the caller's listing for one asset.

    Checks run in order: price, expiration, then ownership/approval through
    the token collaborator. A replaced listing takes all attributes of the
    new call.
    """
    sale_address = normalize_address(sale_address)
    asset_contract = normalize_address(asset_contract)
    caller = normalize_address(ctx.caller)

    async def _list() -> Listing:
        sale = await get_sale_contract(db, sale_address)

        if price <= 0:
            raise InvalidPrice("Price must be greater than zero", price=price)
        if expires_at <= ctx.timestamp:
            raise InvalidExpiration(
                "Expiration must be in the future", expires_at=expires_at, timestamp=ctx.timestamp
            )
        if expires_at > INT64_MAX:
            raise InvalidExpiration("Expiration is out of range", expires_at=expires_at)

        await _require_owner_and_approved(
            db,
            resolve_token,
            sale_address=sale.address,
            caller=caller,
            asset_contract=asset_contract,
            asset_id=asset_id,
        )

        listing = await find_listing(db, sale.address, asset_contract, asset_id, for_update=True)
        if listing is None:
            listing = Listing(
                sale_address=sale.address,
                asset_contract=asset_contract,
                asset_id=asset_id,
                created_by=caller,
            )
            db.add(listing)
        listing.seller = caller
        listing.price = price
        listing.expires_at = expires_at
        listing.updated_by = caller
        await db.flush()

        emit_event(
            db,
            aggregate_type="listing",
            aggregate_id=listing_aggregate_id(sale.address, asset_contract, asset_id),
            event_type="listing.created",
            payload={
                "sale": sale.address,
                "asset_contract": asset_contract,
                "asset_id": asset_id,
                "seller": caller,
                "price": price,
                "expires_at": expires_at,
            },
        )
        return listing

    res = await execute_call(
        db, ctx, to=sale_address, method="listItem", fn=_list,
        lock_key=listing_lock_key(sale_address, asset_contract, asset_id),
    )
    log.info(
        "listing created: sale=%s asset=%s/%s seller=%s price=%s expires_at=%s",
        sale_address, asset_contract, asset_id, caller, price, expires_at,
    )
    return res


async def cancel_listing(
    db: AsyncSession,
    ctx: CallContext,
    sale_address: str,
    *,
    asset_contract: str,
    asset_id: int,
) -> CallResult[None]:
    sale_address = normalize_address(sale_address)
    asset_contract = normalize_address(asset_contract)
    caller = normalize_address(ctx.caller)

    async def _cancel() -> None:
        sale = await get_sale_contract(db, sale_address)
        listing = await find_listing(db, sale.address, asset_contract, asset_id, for_update=True)
        if listing is None:
            raise ListingNotFound(
                f"No listing for token {asset_id} of {asset_contract}",
                asset_contract=asset_contract,
                asset_id=asset_id,
            )
        if listing.seller != caller:
            raise NotSeller(f"{caller} is not the seller", asset_contract=asset_contract, asset_id=asset_id)

        await db.delete(listing)
        await db.flush()

        emit_event(
            db,
            aggregate_type="listing",
            aggregate_id=listing_aggregate_id(sale.address, asset_contract, asset_id),
            event_type="listing.cancelled",
            payload={
                "sale": sale.address,
                "asset_contract": asset_contract,
                "asset_id": asset_id,
                "seller": caller,
            },
        )

    res = await execute_call(
        db, ctx, to=sale_address, method="cancelListing", fn=_cancel,
        lock_key=listing_lock_key(sale_address, asset_contract, asset_id),
    )
    log.info("listing cancelled: sale=%s asset=%s/%s", sale_address, asset_contract, asset_id)
    return res
