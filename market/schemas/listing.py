from pydantic import BaseModel, Field

from market.schemas.common import Address, ReceiptOut, Uint


class ListItemRequest(BaseModel):
    asset_contract: Address
    asset_id: Uint
    # zero is rejected by the registry (InvalidPrice), not by validation
    price: Uint
    expires_at: int = Field(ge=0)


class BuyItemRequest(BaseModel):
    value: Uint


class ListingOut(BaseModel):
    sale: str
    asset_contract: str
    asset_id: Uint
    seller: str
    price: Uint
    expires_at: int


class ListItemOut(ListingOut):
    receipt: ReceiptOut


class CancelOut(BaseModel):
    cancelled: bool
    receipt: ReceiptOut


class SettlementOut(BaseModel):
    sale: str
    asset_contract: str
    asset_id: Uint
    seller: str
    buyer: str
    price: Uint
    fee_recipient: str
    fee: Uint
    seller_amount: Uint
    receipt: ReceiptOut
