import time
from dataclasses import dataclass


@dataclass(frozen=True)
class CallContext:
    """Execution context of one call: who sends it, at what block time, with what value attached."""

    caller: str
    timestamp: int
    value: int = 0


def get_block_timestamp() -> int:
    return int(time.time())
