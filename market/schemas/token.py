from pydantic import BaseModel

from market.schemas.common import Address, Uint


class MintRequest(BaseModel):
    to: Address
    token_id: Uint


class ApproveRequest(BaseModel):
    # null clears the approval
    spender: Address | None = None


class OperatorApprovalRequest(BaseModel):
    operator: Address
    approved: bool


class TokenOwnerOut(BaseModel):
    contract: str
    token_id: Uint
    owner: str
    approved: str | None
