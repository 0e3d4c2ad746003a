from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from market.core.types import Uint256
from market.models.base import Base, AuditMixin


class TokenContract(AuditMixin, Base):
    __tablename__ = "token_contracts"

    address: Mapped[str] = mapped_column(String(42), ForeignKey("accounts.address"), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)

    # Only the minter may mint (MockNFT's privileged setup call)
    minter: Mapped[str] = mapped_column(String(42), nullable=False)


class TokenOwnership(AuditMixin, Base):
    __tablename__ = "token_ownerships"

    contract_address: Mapped[str] = mapped_column(
        String(42), ForeignKey("token_contracts.address"), primary_key=True
    )
    token_id: Mapped[int] = mapped_column(Uint256, primary_key=True)

    owner: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    # single-token approval, cleared on every transfer
    approved: Mapped[str | None] = mapped_column(String(42), nullable=True)


class TokenOperatorApproval(AuditMixin, Base):
    __tablename__ = "token_operator_approvals"

    contract_address: Mapped[str] = mapped_column(
        String(42), ForeignKey("token_contracts.address"), primary_key=True
    )
    owner: Mapped[str] = mapped_column(String(42), primary_key=True)
    operator: Mapped[str] = mapped_column(String(42), primary_key=True)

    approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
