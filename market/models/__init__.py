from market.models.base import Base  # noqa: F401

from market.models.account import Account  # noqa: F401
from market.models.api_key import ApiKey  # noqa: F401
from market.models.sale_contract import SaleContract  # noqa: F401
from market.models.token import TokenContract, TokenOwnership, TokenOperatorApproval  # noqa: F401
from market.models.listing import Listing  # noqa: F401
from market.models.transaction import Transaction  # noqa: F401
from market.models.outbox import OutboxEvent  # noqa: F401
from market.models.idempotency import IdempotencyKey  # noqa: F401
