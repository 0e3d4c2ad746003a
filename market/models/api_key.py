import uuid
from sqlalchemy import Boolean, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from market.models.base import Base


class ApiKey(Base):
    __tablename__ = "api_keys"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: f"key_{uuid.uuid4().hex}")

    # The signer this key acts for
    account_address: Mapped[str] = mapped_column(String(42), ForeignKey("accounts.address"), nullable=False)

    key_prefix: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    key_hash: Mapped[str] = mapped_column(Text, nullable=False, unique=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    rotated_at: Mapped[str | None] = mapped_column(DateTime(timezone=True), nullable=True)
