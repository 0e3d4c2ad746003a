import os
import pytest
from sqlalchemy import select, func

from market.core.config import settings
from market.models.outbox import OutboxEvent
from tests.fixtures_seed import ETHER

INTERNAL = {"X-Internal-Admin-Key": os.getenv("INTERNAL_ADMIN_KEY", "test-internal")}


async def _signer(client, label):
    r = await client.post("/v1/accounts", headers=INTERNAL, json={"label": label})
    assert r.status_code == 200, r.text
    return r.json()


async def _balance(client, address) -> int:
    r = await client.get(f"/v1/accounts/{address}")
    assert r.status_code == 200, r.text
    return int(r.json()["balance"])


async def _setup(client, clock):
    admin = await _signer(client, "admin")
    alice = await _signer(client, "alice")
    bob = await _signer(client, "bob")

    r = await client.post("/v1/contracts/token", headers={"X-API-Key": admin["api_key"]}, json={})
    assert r.status_code == 200, r.text
    token = r.json()["address"]

    r = await client.post(
        f"/v1/tokens/{token}/mint",
        headers={"X-API-Key": admin["api_key"]},
        json={"to": alice["address"], "token_id": 1},
    )
    assert r.status_code == 200, r.text

    # dev: admin, fee: 50
    r = await client.post(
        "/v1/contracts/sale",
        headers={"X-API-Key": admin["api_key"]},
        json={"fee_recipient": admin["address"], "fee_basis_points": 50},
    )
    assert r.status_code == 200, r.text
    sale = r.json()["address"]

    r = await client.post(
        f"/v1/tokens/{token}/approval-for-all",
        headers={"X-API-Key": alice["api_key"]},
        json={"operator": sale, "approved": True},
    )
    assert r.status_code == 200, r.text

    # list item for 10 ETH, expiration: 20 mins
    r = await client.post(
        f"/v1/sales/{sale}/listings",
        headers={"X-API-Key": alice["api_key"]},
        json={"asset_contract": token, "asset_id": 1, "price": str(10 * ETHER), "expires_at": clock.now + 60 * 20},
    )
    assert r.status_code == 200, r.text
    assert r.json()["seller"] == alice["address"]

    return admin, alice, bob, token, sale


async def test_e2e_list_and_buy(client, db_session, clock):
    admin, alice, bob, token, sale = await _setup(client, clock)

    admin_before = await _balance(client, admin["address"])
    alice_before = await _balance(client, alice["address"])
    bob_before = await _balance(client, bob["address"])

    # buy alice's NFT from bob
    r = await client.post(
        f"/v1/sales/{sale}/listings/{token}/1/buy",
        headers={"X-API-Key": bob["api_key"]},
        json={"value": str(10 * ETHER)},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["fee"] == str(ETHER // 2)
    assert body["receipt"]["execution_fee"] == str(settings.execution_fee_wei)

    assert bob_before - await _balance(client, bob["address"]) > 10 * ETHER
    assert await _balance(client, alice["address"]) - alice_before == 9 * ETHER + ETHER // 2
    assert await _balance(client, admin["address"]) - admin_before == ETHER // 2

    r = await client.get(f"/v1/tokens/{token}/1")
    assert r.json()["owner"] == bob["address"]

    r = await client.get(f"/v1/sales/{sale}/listings/{token}/1")
    assert r.status_code == 404
    assert r.json()["error"] == "ListingNotFound"

    events = (
        await db_session.execute(select(OutboxEvent.event_type).order_by(OutboxEvent.created_at.asc()))
    ).scalars().all()
    assert sorted(events) == ["listing.created", "sale.completed"]


async def test_rejected_buy_returns_error_code(client, clock):
    admin, alice, bob, token, sale = await _setup(client, clock)
    bob_before = await _balance(client, bob["address"])

    r = await client.post(
        f"/v1/sales/{sale}/listings/{token}/1/buy",
        headers={"X-API-Key": bob["api_key"]},
        json={"value": str(9 * ETHER)},
    )
    assert r.status_code == 422
    assert r.json()["error"] == "IncorrectPayment"
    assert await _balance(client, bob["address"]) == bob_before

    clock.now += 60 * 20 + 1
    r = await client.post(
        f"/v1/sales/{sale}/listings/{token}/1/buy",
        headers={"X-API-Key": bob["api_key"]},
        json={"value": str(10 * ETHER)},
    )
    assert r.status_code == 409
    assert r.json()["error"] == "ListingExpired"

    r = await client.get(f"/v1/sales/{sale}/listings", params={"active_only": "true"})
    assert r.status_code == 200
    assert r.json() == []


async def test_buy_with_idempotency_key_is_safe_to_retry(client, db_session, clock):
    admin, alice, bob, token, sale = await _setup(client, clock)
    headers = {"X-API-Key": bob["api_key"], "Idempotency-Key": "buy-1"}
    url = f"/v1/sales/{sale}/listings/{token}/1/buy"

    r1 = await client.post(url, headers=headers, json={"value": str(10 * ETHER)})
    assert r1.status_code == 200, r1.text
    bob_after_first = await _balance(client, bob["address"])

    r2 = await client.post(url, headers=headers, json={"value": str(10 * ETHER)})
    assert r2.status_code == 200, r2.text
    assert r2.json()["receipt"]["tx_hash"] == r1.json()["receipt"]["tx_hash"]
    assert await _balance(client, bob["address"]) == bob_after_first

    r3 = await client.post(url, headers=headers, json={"value": str(11 * ETHER)})
    assert r3.status_code == 409

    count = (
        await db_session.execute(
            select(func.count()).select_from(OutboxEvent).where(OutboxEvent.event_type == "sale.completed")
        )
    ).scalar_one()
    assert count == 1


async def test_cancel_by_other_signer_is_forbidden(client, clock):
    admin, alice, bob, token, sale = await _setup(client, clock)
    url = f"/v1/sales/{sale}/listings/{token}/1"

    r = await client.delete(url, headers={"X-API-Key": bob["api_key"]})
    assert r.status_code == 403
    assert r.json()["error"] == "NotSeller"

    r = await client.delete(url, headers={"X-API-Key": alice["api_key"]})
    assert r.status_code == 200, r.text
    assert r.json()["cancelled"] is True


async def test_calls_require_a_signer(client, clock):
    r = await client.post("/v1/contracts/token", json={})
    assert r.status_code == 401

    r = await client.post("/v1/accounts", json={"label": "x"})
    assert r.status_code == 403


async def test_fee_above_denominator_is_rejected(client):
    admin = await _signer(client, "admin")
    r = await client.post(
        "/v1/contracts/sale",
        headers={"X-API-Key": admin["api_key"]},
        json={"fee_recipient": admin["address"], "fee_basis_points": settings.fee_denominator + 1},
    )
    assert r.status_code == 422
    assert r.json()["error"] == "InvalidFee"


async def test_out_of_range_values_are_rejected_before_storage(client, clock):
    admin, alice, bob, token, sale = await _setup(client, clock)

    r = await client.post(
        f"/v1/sales/{sale}/listings",
        headers={"X-API-Key": alice["api_key"]},
        json={"asset_contract": token, "asset_id": 1, "price": str(ETHER), "expires_at": 2**63},
    )
    assert r.status_code == 422
    assert r.json()["error"] == "InvalidExpiration"

    r = await client.get(f"/v1/sales/{sale}/listings/{token}/1")
    assert r.json()["price"] == str(10 * ETHER)

    r = await client.get(f"/v1/tokens/{token}/{2**256}")
    assert r.status_code == 422

    r = await client.get(f"/v1/sales/{sale}/listings/{token}/{2**256}")
    assert r.status_code == 422

    r = await client.delete(
        f"/v1/sales/{sale}/listings/{token}/{2**256}", headers={"X-API-Key": alice["api_key"]}
    )
    assert r.status_code == 422
