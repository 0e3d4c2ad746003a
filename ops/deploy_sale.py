from __future__ import annotations

import argparse
import json
import os
import sys
import time
from typing import Any
import urllib.request
import urllib.error


DEFAULT_BASE_URL = os.getenv("SALE_HUB_BASE_URL", "http://localhost:8000")
DEFAULT_ADMIN_KEY = os.getenv("INTERNAL_ADMIN_KEY", "")
DEFAULT_API_KEY = os.getenv("SALE_HUB_API_KEY", "")

DEFAULT_TIMEOUT_SECONDS = 30

WEI_PER_ETHER = 10**18


class HubError(RuntimeError):
    def __init__(self, status: int | None, body: Any):
        super().__init__(f"HTTP {status}: {body}")
        self.status = status
        self.body = body


def http_json(method: str, url: str, payload: dict[str, Any] | None = None, headers: dict[str, str] | None = None) -> dict[str, Any]:
    data = json.dumps(payload).encode("utf-8") if payload is not None else None
    req = urllib.request.Request(
        url=url,
        data=data,
        method=method,
        headers={"Content-Type": "application/json", **(headers or {})},
    )
    try:
        with urllib.request.urlopen(req, timeout=DEFAULT_TIMEOUT_SECONDS) as resp:
            raw = resp.read().decode("utf-8")
            return json.loads(raw) if raw else {}
    except urllib.error.HTTPError as e:
        body: Any = ""
        try:
            body = json.loads(e.read().decode("utf-8"))
        except (ValueError, OSError):
            pass
        raise HubError(e.code, body) from e
    except urllib.error.URLError as e:
        raise HubError(None, str(e.reason)) from e


class Hub:
    def __init__(self, base_url: str, admin_key: str = ""):
        self.base_url = base_url.rstrip("/")
        self.admin_key = admin_key

    def _url(self, path: str) -> str:
        return f"{self.base_url}/v1{path}"

    def create_signer(self, label: str) -> dict[str, Any]:
        return http_json("POST", self._url("/accounts"), {"label": label}, {"X-Internal-Admin-Key": self.admin_key})

    def balance(self, address: str) -> int:
        return int(http_json("GET", self._url(f"/accounts/{address}"))["balance"])

    def call(self, api_key: str, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        return http_json(method, self._url(path), payload, {"X-API-Key": api_key})

    def get(self, path: str) -> dict[str, Any]:
        return http_json("GET", self._url(path))


def deploy(hub: Hub, api_key: str, fee_recipient: str, fee_bps: int, with_token: bool) -> dict[str, Any]:
    sale = hub.call(api_key, "POST", "/contracts/sale", {"fee_recipient": fee_recipient, "fee_basis_points": fee_bps})
    print(f"Sale deployed to: {sale['address']}", file=sys.stderr)
    out: dict[str, Any] = {"sale": sale["address"], "fee_recipient": sale["fee_recipient"], "fee_basis_points": sale["fee_basis_points"]}

    if with_token:
        token = hub.call(api_key, "POST", "/contracts/token", {})
        print(f"MockNFT deployed to: {token['address']}", file=sys.stderr)
        out["token"] = token["address"]
    return out


def verify(hub: Hub, fee_bps: int, price_wei: int) -> dict[str, Any]:
    """
    Run one listing and purchase between fresh signers and check the settlement.

    admin deploys and collects the fee, alice lists token #1, bob buys it.
    """
    admin = hub.create_signer("admin")
    alice = hub.create_signer("alice")
    bob = hub.create_signer("bob")

    token = hub.call(admin["api_key"], "POST", "/contracts/token", {})["address"]
    hub.call(admin["api_key"], "POST", f"/tokens/{token}/mint", {"to": alice["address"], "token_id": 1})

    sale = hub.call(
        admin["api_key"], "POST", "/contracts/sale",
        {"fee_recipient": admin["address"], "fee_basis_points": fee_bps},
    )
    sale_address = sale["address"]

    hub.call(alice["api_key"], "POST", f"/tokens/{token}/approval-for-all", {"operator": sale_address, "approved": True})
    hub.call(
        alice["api_key"], "POST", f"/sales/{sale_address}/listings",
        {"asset_contract": token, "asset_id": 1, "price": str(price_wei), "expires_at": int(time.time()) + 60 * 20},
    )

    before = {name: hub.balance(s["address"]) for name, s in (("admin", admin), ("alice", alice), ("bob", bob))}
    settlement = hub.call(
        bob["api_key"], "POST", f"/sales/{sale_address}/listings/{token}/1/buy", {"value": str(price_wei)}
    )
    after = {name: hub.balance(s["address"]) for name, s in (("admin", admin), ("alice", alice), ("bob", bob))}
    owner = hub.get(f"/tokens/{token}/1")["owner"]

    fee = int(settlement["fee"])
    checks = {
        "buyer_paid_more_than_price": before["bob"] - after["bob"] > price_wei,
        "seller_received": after["alice"] - before["alice"] == price_wei - fee,
        "fee_recipient_received": after["admin"] - before["admin"] == fee,
        "owner_is_buyer": owner == bob["address"],
    }
    return {"sale": sale_address, "token": token, "fee": str(fee), "checks": checks, "ok": all(checks.values())}


def main() -> int:
    p = argparse.ArgumentParser(description="Deploy a Sale contract (and MockNFT) or verify a settlement end to end.")
    p.add_argument("--base-url", default=DEFAULT_BASE_URL)
    p.add_argument("--fee-bps", type=int, default=50, help="fee basis points passed to the Sale constructor")
    sub = p.add_subparsers(dest="command", required=True)

    d = sub.add_parser("deploy", help="deploy a Sale contract")
    d.add_argument("--api-key", default=DEFAULT_API_KEY, help="signer key of the deployer")
    d.add_argument("--fee-recipient", required=True)
    d.add_argument("--with-token", action="store_true", help="also deploy a MockNFT contract")

    v = sub.add_parser("verify", help="list and buy one token between fresh dev signers")
    v.add_argument("--admin-key", default=DEFAULT_ADMIN_KEY)
    v.add_argument("--price-ether", type=int, default=10)

    args = p.parse_args()

    try:
        if args.command == "deploy":
            if not args.api_key:
                print("Missing SALE_HUB_API_KEY (env) or --api-key", file=sys.stderr)
                return 2
            result = deploy(Hub(args.base_url), args.api_key, args.fee_recipient, args.fee_bps, args.with_token)
        else:
            if not args.admin_key:
                print("Missing INTERNAL_ADMIN_KEY (env) or --admin-key", file=sys.stderr)
                return 2
            result = verify(Hub(args.base_url, args.admin_key), args.fee_bps, args.price_ether * WEI_PER_ETHER)
    except HubError as e:
        print(str(e), file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0 if result.get("ok", True) else 1


if __name__ == "__main__":
    raise SystemExit(main())
