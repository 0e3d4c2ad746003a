import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from market.models.listing import Listing
from market.services import tokens
from market.services.accounts import create_dev_signer
from market.services.deployments import deploy_sale, deploy_token
from market.services.execution import HELD_LOCKS_KEY
from market.services.listings import list_item
from tests.fixtures_seed import ETHER


async def _seed(Session, clock):
    async with Session() as db:
        admin = (await create_dev_signer(db, label="admin", created_by="test")).account.address
        alice = (await create_dev_signer(db, label="alice", created_by="test")).account.address

        token = (await deploy_token(db, clock.ctx(admin))).result.address
        await tokens.mint(db, clock.ctx(admin), token_address=token, to=alice, token_id=1)
        sale = (
            await deploy_sale(db, clock.ctx(admin), fee_recipient=admin, fee_basis_points=50)
        ).result.address
        await tokens.set_approval_for_all(db, clock.ctx(alice), token_address=token, operator=sale, approved=True)
        await db.commit()
    return alice, token, sale


async def test_concurrent_calls_on_one_listing_are_serialized(async_engine, clock):
    """
    Two sessions relist the same asset at once. The second waits for the
    first to commit instead of colliding with its uncommitted write.
    """
    Session = async_sessionmaker(async_engine, expire_on_commit=False)
    alice, token, sale = await _seed(Session, clock)
    listed = []

    async def relist(price: int, hold: float) -> None:
        async with Session() as db:
            await list_item(
                db, clock.ctx(alice), sale,
                asset_contract=token, asset_id=1, price=price, expires_at=clock.now + 600,
            )
            listed.append(price)
            await asyncio.sleep(hold)
            await db.commit()

    await asyncio.gather(relist(ETHER, 0.05), relist(2 * ETHER, 0))

    assert listed == [ETHER, 2 * ETHER]

    async with Session() as db:
        rows = (await db.execute(select(Listing))).scalars().all()
    assert len(rows) == 1
    assert rows[0].price == 2 * ETHER


async def test_call_lock_is_released_when_the_session_rolls_back(async_engine, clock):
    Session = async_sessionmaker(async_engine, expire_on_commit=False)
    alice, token, sale = await _seed(Session, clock)

    async with Session() as db:
        await list_item(
            db, clock.ctx(alice), sale,
            asset_contract=token, asset_id=1, price=ETHER, expires_at=clock.now + 600,
        )
        # a second call on the same key from the same session does not wait on itself
        await list_item(
            db, clock.ctx(alice), sale,
            asset_contract=token, asset_id=1, price=3 * ETHER, expires_at=clock.now + 600,
        )
        assert len(db.sync_session.info[HELD_LOCKS_KEY]) == 1
        await db.rollback()
        assert HELD_LOCKS_KEY not in db.sync_session.info

    async with Session() as db:
        await asyncio.wait_for(
            list_item(
                db, clock.ctx(alice), sale,
                asset_contract=token, asset_id=1, price=2 * ETHER, expires_at=clock.now + 600,
            ),
            timeout=5,
        )
        await db.commit()
        listing = (await db.execute(select(Listing))).scalar_one()
    assert listing.price == 2 * ETHER
