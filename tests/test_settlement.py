import pytest
from sqlalchemy import func, select

from market.core.config import settings
from market.core.errors import (
    IncorrectPayment,
    InsufficientFunds,
    ListingExpired,
    ListingNotFound,
    PaymentFailed,
    TransferFailed,
)
from market.models.listing import Listing
from market.models.outbox import OutboxEvent
from market.services import ledger, tokens
from market.services.deployments import deploy_sale
from market.services.listings import find_listing, list_item
from market.services.settlement import buy_item, compute_split
from market.services.tokens import load_token_contract
from tests.fixtures_seed import ETHER

PRICE = 10 * ETHER


async def _list(db, clock, m, *, sale=None, price=PRICE, ttl=60 * 20):
    await list_item(
        db,
        clock.ctx(m["alice"].address),
        sale or m["sale"],
        asset_contract=m["token"],
        asset_id=1,
        price=price,
        expires_at=clock.now + ttl,
    )


async def _balances(db, *addresses):
    return [await ledger.get_balance(db, a) for a in addresses]


async def _event_count(db, event_type: str) -> int:
    stmt = select(func.count()).select_from(OutboxEvent).where(OutboxEvent.event_type == event_type)
    return (await db.execute(stmt)).scalar_one()


def test_compute_split_matches_observed_fee():
    split = compute_split(PRICE, 50, denominator=1000)
    assert split.fee == ETHER // 2
    assert split.seller_amount == 9 * ETHER + ETHER // 2


def test_fee_rate_unit_follows_the_denominator():
    # per mille by default, basis points with 10000
    assert compute_split(PRICE, 50).fee == PRICE * 5 // 100
    assert compute_split(PRICE, 50, denominator=10_000).fee == PRICE * 5 // 1000


@pytest.mark.parametrize(
    "price,bps,denominator",
    [(1, 50, 1000), (999, 50, 1000), (10**18 + 7, 333, 10_000), (12345, 0, 1000), (12345, 1000, 1000)],
)
def test_compute_split_rounds_fee_down_and_sums_to_price(price, bps, denominator):
    split = compute_split(price, bps, denominator=denominator)
    assert split.fee == price * bps // denominator
    assert split.fee + split.seller_amount == price


async def test_buy_transfers_asset_and_disburses(db_session, clock, seed_market):
    m = seed_market
    await _list(db_session, clock, m)

    admin, alice, bob = m["admin"].address, m["alice"].address, m["bob"].address
    before = await _balances(db_session, admin, alice, bob)

    res = await buy_item(db_session, clock.ctx(bob, PRICE), m["sale"], asset_contract=m["token"], asset_id=1)

    after = await _balances(db_session, admin, alice, bob)
    assert after[0] - before[0] == ETHER // 2
    assert after[1] - before[1] == 9 * ETHER + ETHER // 2
    assert before[2] - after[2] == PRICE + settings.execution_fee_wei
    assert before[2] - after[2] > PRICE

    token = await load_token_contract(db_session, m["token"])
    assert await token.owner_of(1) == bob
    assert await find_listing(db_session, m["sale"], m["token"], 1) is None
    # nothing stays escrowed in the Sale contract
    assert await ledger.get_balance(db_session, m["sale"]) == 0

    assert res.result.buyer == bob
    assert res.result.seller == alice
    assert res.receipt.method == "buyItem"
    assert res.receipt.value == PRICE
    assert await _event_count(db_session, "sale.completed") == 1


async def test_second_buy_fails_with_listing_not_found(db_session, clock, seed_market):
    m = seed_market
    await _list(db_session, clock, m)
    bob = m["bob"].address

    await buy_item(db_session, clock.ctx(bob, PRICE), m["sale"], asset_contract=m["token"], asset_id=1)
    with pytest.raises(ListingNotFound):
        await buy_item(db_session, clock.ctx(bob, PRICE), m["sale"], asset_contract=m["token"], asset_id=1)


async def test_buy_at_exact_expiration_settles(db_session, clock, seed_market):
    m = seed_market
    await _list(db_session, clock, m, ttl=100)

    ctx = clock.ctx(m["bob"].address, PRICE, at=clock.now + 100)
    await buy_item(db_session, ctx, m["sale"], asset_contract=m["token"], asset_id=1)

    token = await load_token_contract(db_session, m["token"])
    assert await token.owner_of(1) == m["bob"].address


async def test_buy_after_expiration_fails_and_keeps_listing(db_session, clock, seed_market):
    m = seed_market
    await _list(db_session, clock, m, ttl=100)
    bob = m["bob"].address
    before = await _balances(db_session, bob)

    ctx = clock.ctx(bob, PRICE, at=clock.now + 101)
    with pytest.raises(ListingExpired):
        await buy_item(db_session, ctx, m["sale"], asset_contract=m["token"], asset_id=1)

    assert await _balances(db_session, bob) == before
    # expired listings are not swept
    assert await find_listing(db_session, m["sale"], m["token"], 1) is not None


@pytest.mark.parametrize("value", [PRICE - 1, PRICE + 1, 0])
async def test_incorrect_payment_leaves_balances_unchanged(db_session, clock, seed_market, value):
    m = seed_market
    await _list(db_session, clock, m)
    addrs = (m["admin"].address, m["alice"].address, m["bob"].address, m["sale"])
    before = await _balances(db_session, *addrs)

    with pytest.raises(IncorrectPayment):
        await buy_item(db_session, clock.ctx(m["bob"].address, value), m["sale"], asset_contract=m["token"], asset_id=1)

    assert await _balances(db_session, *addrs) == before
    assert await find_listing(db_session, m["sale"], m["token"], 1) is not None
    assert await _event_count(db_session, "sale.completed") == 0


async def test_revoked_approval_fails_transfer_without_side_effects(db_session, clock, seed_market):
    m = seed_market
    await _list(db_session, clock, m)
    await tokens.set_approval_for_all(
        db_session, clock.ctx(m["alice"].address), token_address=m["token"], operator=m["sale"], approved=False
    )
    addrs = (m["admin"].address, m["alice"].address, m["bob"].address, m["sale"])
    before = await _balances(db_session, *addrs)

    with pytest.raises(TransferFailed):
        await buy_item(db_session, clock.ctx(m["bob"].address, PRICE), m["sale"], asset_contract=m["token"], asset_id=1)

    assert await _balances(db_session, *addrs) == before
    token = await load_token_contract(db_session, m["token"])
    assert await token.owner_of(1) == m["alice"].address
    assert await find_listing(db_session, m["sale"], m["token"], 1) is not None


async def test_non_payable_fee_recipient_fails_payment_without_side_effects(db_session, clock, seed_market):
    m = seed_market
    admin, alice, bob = m["admin"].address, m["alice"].address, m["bob"].address

    # token contracts have no payable receive hook
    sale = (
        await deploy_sale(db_session, clock.ctx(admin), fee_recipient=m["token"], fee_basis_points=50)
    ).result.address
    await tokens.set_approval_for_all(
        db_session, clock.ctx(alice), token_address=m["token"], operator=sale, approved=True
    )
    await _list(db_session, clock, m, sale=sale)

    addrs = (alice, bob, sale, m["token"])
    before = await _balances(db_session, *addrs)

    with pytest.raises(PaymentFailed):
        await buy_item(db_session, clock.ctx(bob, PRICE), sale, asset_contract=m["token"], asset_id=1)

    assert await _balances(db_session, *addrs) == before
    token = await load_token_contract(db_session, m["token"])
    assert await token.owner_of(1) == alice
    assert await find_listing(db_session, sale, m["token"], 1) is not None


async def test_buyer_without_funds_is_rejected(db_session, clock, seed_market):
    m = seed_market
    await _list(db_session, clock, m, price=settings.dev_account_balance_wei)

    with pytest.raises(InsufficientFunds):
        await buy_item(
            db_session,
            clock.ctx(m["bob"].address, settings.dev_account_balance_wei),
            m["sale"],
            asset_contract=m["token"],
            asset_id=1,
        )

    count = (await db_session.execute(select(func.count()).select_from(Listing))).scalar_one()
    assert count == 1
