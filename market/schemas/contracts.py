from pydantic import BaseModel, Field

from market.schemas.common import Address, ReceiptOut


class SaleDeploy(BaseModel):
    fee_recipient: Address
    fee_basis_points: int = Field(ge=0)


class SaleOut(BaseModel):
    address: str
    deployer: str
    fee_recipient: str
    fee_basis_points: int


class SaleDeployOut(SaleOut):
    receipt: ReceiptOut


class TokenDeploy(BaseModel):
    name: str = Field(default="MockNFT", max_length=200)
    symbol: str = Field(default="MNFT", max_length=32)


class TokenDeployOut(BaseModel):
    address: str
    name: str
    symbol: str
    minter: str
    receipt: ReceiptOut
