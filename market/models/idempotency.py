from sqlalchemy import JSON, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from market.core.ids import gen_id

from market.models.base import Base


class IdempotencyKey(Base):
    __tablename__ = "idempotency_keys"
    __table_args__ = (
        UniqueConstraint("account_address", "key", name="uq_idempotency_account_key"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("idm"))

    account_address: Mapped[str] = mapped_column(String(42), ForeignKey("accounts.address"), nullable=False)

    key: Mapped[str] = mapped_column(String(200), nullable=False)
    request_hash: Mapped[str] = mapped_column(String(80), nullable=False)

    # Stored response (so retries return the same thing)
    response: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
