"""
Settlement Engine.

``buy_item`` validates a purchase against a listing and, inside a single
call, escrows the buyer's payment in the Sale contract, moves the asset,
pays the fee recipient and the seller, and deletes the listing. Any failure
reverts every one of those effects.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from market.core.config import settings
from market.core.errors import (
    ContractNotFound,
    IncorrectPayment,
    ListingExpired,
    ListingNotFound,
    TokenError,
    TransferFailed,
)
from market.core.ids import normalize_address
from market.services import ledger
from market.services.context import CallContext
from market.services.deployments import get_sale_contract
from market.services.events import emit_event, listing_aggregate_id
from market.services.execution import CallResult, execute_call
from market.services.listings import find_listing, listing_lock_key
from market.services.tokens import TokenResolver, load_token_contract

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeeSplit:
    fee: int
    seller_amount: int


@dataclass(frozen=True)
class Settlement:
    sale: str
    asset_contract: str
    asset_id: int
    seller: str
    buyer: str
    price: int
    fee_recipient: str
    fee: int
    seller_amount: int


def compute_split(price: int, fee_basis_points: int, denominator: int | None = None) -> FeeSplit:
    """
    Split ``price`` into the fee and the seller's share.

    ``fee_basis_points`` is a rate in units of ``1/denominator``. With the
    default ``fee_denominator`` of 1000 that unit is per mille, so 50 means
    5% and 10 ether pays 0.5 ether of fee. Set ``fee_denominator`` to 10000
    for true basis points (50 -> 0.5%).
    """
    # fee rounds down; the seller gets the remainder so both parts sum to price
    denominator = denominator or settings.fee_denominator
    fee = price * fee_basis_points // denominator
    return FeeSplit(fee=fee, seller_amount=price - fee)


async def buy_item(
    db: AsyncSession,
    ctx: CallContext,
    sale_address: str,
    *,
    asset_contract: str,
    asset_id: int,
    resolve_token: TokenResolver = load_token_contract,
) -> CallResult[Settlement]:
    sale_address = normalize_address(sale_address)
    asset_contract = normalize_address(asset_contract)
    buyer = normalize_address(ctx.caller)

    async def _buy() -> Settlement:
        sale = await get_sale_contract(db, sale_address)
        listing = await find_listing(db, sale.address, asset_contract, asset_id, for_update=True)

        if listing is None:
            raise ListingNotFound(
                f"No listing for token {asset_id} of {asset_contract}",
                asset_contract=asset_contract,
                asset_id=asset_id,
            )
        # inclusive: a purchase at exactly expires_at still settles
        if ctx.timestamp > listing.expires_at:
            raise ListingExpired(
                "Listing has expired", expires_at=listing.expires_at, timestamp=ctx.timestamp
            )
        if ctx.value != listing.price:
            raise IncorrectPayment(
                "Attached value must equal the listing price", price=listing.price, value=ctx.value
            )

        seller = listing.seller
        price = listing.price

        await ledger.transfer_value(db, buyer, sale.address, price)

        try:
            token = await resolve_token(db, asset_contract)
            await token.transfer_from(sale.address, seller, buyer, asset_id)
        except (ContractNotFound, TokenError) as e:
            raise TransferFailed(e.message, asset_contract=asset_contract, asset_id=asset_id) from e

        split = compute_split(price, sale.fee_basis_points)
        await ledger.transfer_value(db, sale.address, sale.fee_recipient, split.fee)
        await ledger.transfer_value(db, sale.address, seller, split.seller_amount)

        await db.delete(listing)
        await db.flush()

        settlement = Settlement(
            sale=sale.address,
            asset_contract=asset_contract,
            asset_id=asset_id,
            seller=seller,
            buyer=buyer,
            price=price,
            fee_recipient=sale.fee_recipient,
            fee=split.fee,
            seller_amount=split.seller_amount,
        )
        emit_event(
            db,
            aggregate_type="listing",
            aggregate_id=listing_aggregate_id(sale.address, asset_contract, asset_id),
            event_type="sale.completed",
            payload={
                "sale": sale.address,
                "asset_contract": asset_contract,
                "asset_id": asset_id,
                "seller": seller,
                "buyer": buyer,
                "price": price,
                "fee_recipient": sale.fee_recipient,
                "fee": split.fee,
                "seller_amount": split.seller_amount,
            },
        )
        return settlement

    res = await execute_call(
        db, ctx, to=sale_address, method="buyItem", fn=_buy,
        lock_key=listing_lock_key(sale_address, asset_contract, asset_id),
    )
    s = res.result
    log.info(
        "sale completed: sale=%s asset=%s/%s seller=%s buyer=%s price=%s fee=%s",
        s.sale, s.asset_contract, s.asset_id, s.seller, s.buyer, s.price, s.fee,
    )
    return res
