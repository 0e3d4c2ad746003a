from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

UINT256_MAX = 2**256 - 1
# BigInteger columns (unix timestamps) are signed 64-bit
INT64_MAX = 2**63 - 1


class Uint256(TypeDecorator):
    """
    Unsigned 256-bit integer stored as a decimal string.

    Wei amounts overflow BIGINT, and NUMERIC loses precision on SQLite,
    so values round-trip through text and surface as Python ``int``.
    """

    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = int(value)
        if value < 0 or value > UINT256_MAX:
            raise ValueError(f"uint256 out of range: {value}")
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)
