from dataclasses import dataclass

import pytest
import pytest_asyncio

from market.services.accounts import create_dev_signer
from market.services.context import CallContext
from market.services.deployments import deploy_sale, deploy_token
from market.services import tokens

ETHER = 10**18


class Clock:
    """Block timestamp source the tests can move."""

    def __init__(self, now: int):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def ctx(self, caller: str, value: int = 0, *, at: int | None = None) -> CallContext:
        return CallContext(caller=caller, timestamp=self.now if at is None else at, value=value)


@dataclass(frozen=True)
class SeedSigner:
    address: str
    api_key: str


@pytest.fixture
def clock():
    return Clock(1_700_000_000)


@pytest_asyncio.fixture
async def signers(db_session):
    out = {}
    for name in ("admin", "alice", "bob"):
        s = await create_dev_signer(db_session, label=name, created_by="test")
        out[name] = SeedSigner(address=s.account.address, api_key=s.plain_key)
    return out


@pytest_asyncio.fixture
async def seed_market(db_session, signers, clock):
    """
    MockNFT with token #1 owned by alice, a Sale (fee recipient admin, 50)
    and alice's operator approval for the Sale.
    """
    admin = signers["admin"]
    alice = signers["alice"]

    token = (await deploy_token(db_session, clock.ctx(admin.address))).result.address
    await tokens.mint(db_session, clock.ctx(admin.address), token_address=token, to=alice.address, token_id=1)

    sale = (
        await deploy_sale(db_session, clock.ctx(admin.address), fee_recipient=admin.address, fee_basis_points=50)
    ).result.address
    await tokens.set_approval_for_all(
        db_session, clock.ctx(alice.address), token_address=token, operator=sale, approved=True
    )

    return {"token": token, "sale": sale, **signers}
