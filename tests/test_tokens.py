import pytest

from market.core.errors import InvalidFee, NotMinter, NotTokenOwnerOrApproved, TokenAlreadyMinted
from market.services import tokens
from market.services.deployments import deploy_sale, get_sale_contract
from market.services.tokens import load_token_contract


async def test_only_minter_can_mint(db_session, clock, seed_market):
    m = seed_market
    with pytest.raises(NotMinter):
        await tokens.mint(db_session, clock.ctx(m["bob"].address), token_address=m["token"], to=m["bob"].address, token_id=2)


async def test_token_id_cannot_be_minted_twice(db_session, clock, seed_market):
    m = seed_market
    with pytest.raises(TokenAlreadyMinted):
        await tokens.mint(db_session, clock.ctx(m["admin"].address), token_address=m["token"], to=m["bob"].address, token_id=1)

    token = await load_token_contract(db_session, m["token"])
    assert await token.owner_of(1) == m["alice"].address


async def test_transfer_requires_owner_or_approval(db_session, seed_market):
    m = seed_market
    token = await load_token_contract(db_session, m["token"])
    with pytest.raises(NotTokenOwnerOrApproved):
        await token.transfer_from(m["bob"].address, m["alice"].address, m["bob"].address, 1)

    # the Sale contract is an approved operator of alice
    await token.transfer_from(m["sale"], m["alice"].address, m["bob"].address, 1)
    assert await token.owner_of(1) == m["bob"].address
    assert await token.is_approved_for_all(m["alice"].address, m["sale"]) is True


async def test_sale_configuration_is_fixed_at_deployment(db_session, clock, seed_market):
    m = seed_market
    sale = await get_sale_contract(db_session, m["sale"])
    assert sale.fee_recipient == m["admin"].address
    assert sale.fee_basis_points == 50
    assert sale.deployer == m["admin"].address


async def test_negative_fee_is_rejected(db_session, clock, signers):
    admin = signers["admin"].address
    with pytest.raises(InvalidFee):
        await deploy_sale(db_session, clock.ctx(admin), fee_recipient=admin, fee_basis_points=-1)
