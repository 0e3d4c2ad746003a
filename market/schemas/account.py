from pydantic import BaseModel, Field

from market.schemas.common import Uint


class DevSignerCreate(BaseModel):
    label: str | None = Field(default=None, max_length=200)
    # defaults to settings.dev_account_balance_wei
    balance: Uint | None = None


class DevSignerOut(BaseModel):
    address: str
    label: str | None
    balance: Uint
    api_key: str


class FundRequest(BaseModel):
    amount: Uint


class AccountOut(BaseModel):
    address: str
    balance: Uint
    is_contract: bool
