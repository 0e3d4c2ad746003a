import re
from typing import Annotated

from pydantic import AfterValidator, BaseModel, BeforeValidator, PlainSerializer

from market.core.ids import normalize_address
from market.core.types import UINT256_MAX

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")


def _parse_uint(value):
    # uint256 amounts arrive as JSON ints or decimal strings
    if isinstance(value, bool):
        raise ValueError("expected an unsigned integer")
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            raise ValueError("expected an unsigned integer")
        value = int(value)
    if not isinstance(value, int):
        raise ValueError("expected an unsigned integer")
    if value < 0 or value > UINT256_MAX:
        raise ValueError("value out of uint256 range")
    return value


def _check_address(value: str) -> str:
    value = normalize_address(value)
    if not _ADDRESS_RE.match(value):
        raise ValueError("expected a 20-byte hex address")
    return value


Uint = Annotated[int, BeforeValidator(_parse_uint), PlainSerializer(str, return_type=str)]
Address = Annotated[str, AfterValidator(_check_address)]


class ReceiptOut(BaseModel):
    tx_hash: str
    sender: str
    to: str | None
    method: str
    value: Uint
    execution_fee: Uint
    block_timestamp: int
