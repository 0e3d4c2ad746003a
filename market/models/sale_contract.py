from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from market.models.base import Base, AuditMixin


class SaleContract(AuditMixin, Base):
    __tablename__ = "sale_contracts"

    address: Mapped[str] = mapped_column(String(42), ForeignKey("accounts.address"), primary_key=True)
    deployer: Mapped[str] = mapped_column(String(42), nullable=False)

    # Set once at deployment; there is no setter
    fee_recipient: Mapped[str] = mapped_column(String(42), nullable=False)
    # rate in units of 1/settings.fee_denominator (per mille by default)
    fee_basis_points: Mapped[int] = mapped_column(Integer, nullable=False)
