from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from market.core.types import Uint256
from market.models.base import Base, AuditMixin


class Account(AuditMixin, Base):
    __tablename__ = "accounts"

    address: Mapped[str] = mapped_column(String(42), primary_key=True)
    label: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # wei
    balance: Mapped[int] = mapped_column(Uint256, nullable=False, default=0)

    # Contract accounts are created by deployments, never by signers
    is_contract: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # False for contracts without a payable receive hook (e.g. token contracts)
    accepts_payments: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
