from sqlalchemy import BigInteger, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from market.core.ids import gen_id
from market.core.types import Uint256

from market.models.base import Base, AuditMixin


class Listing(AuditMixin, Base):
    __tablename__ = "listings"
    __table_args__ = (
        # at most one listing per asset within a sale registry
        UniqueConstraint(
            "sale_address", "asset_contract", "asset_id",
            name="uq_listing_asset_per_sale"
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("lst"))

    sale_address: Mapped[str] = mapped_column(String(42), ForeignKey("sale_contracts.address"), nullable=False)
    asset_contract: Mapped[str] = mapped_column(String(42), nullable=False)
    asset_id: Mapped[int] = mapped_column(Uint256, nullable=False)

    seller: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    price: Mapped[int] = mapped_column(Uint256, nullable=False)

    # unix seconds; purchase allowed while block timestamp <= expires_at
    expires_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
