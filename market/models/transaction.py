from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from market.core.ids import gen_tx_hash
from market.core.types import Uint256
from market.models.base import Base


class Transaction(Base):
    """Receipt of a committed state-changing call."""

    __tablename__ = "transactions"

    tx_hash: Mapped[str] = mapped_column(String(66), primary_key=True, default=gen_tx_hash)

    sender: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    to: Mapped[str | None] = mapped_column(String(42), nullable=True)
    method: Mapped[str] = mapped_column(String(80), nullable=False)  # e.g. "buyItem"

    value: Mapped[int] = mapped_column(Uint256, nullable=False, default=0)
    execution_fee: Mapped[int] = mapped_column(Uint256, nullable=False, default=0)
    block_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
