import secrets
import uuid

def gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def gen_address() -> str:
    # 20-byte account / contract address, lower-case hex
    return "0x" + secrets.token_hex(20)


def gen_tx_hash() -> str:
    return "0x" + secrets.token_hex(32)


def normalize_address(value: str) -> str:
    value = value.strip().lower()
    if not value.startswith("0x"):
        value = "0x" + value
    return value
