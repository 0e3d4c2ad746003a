"""
Protocol and execution-environment errors.

Every error aborts the call that raised it; the call's savepoint is rolled
back before the error reaches the caller. ``code`` is the stable identifier
surfaced in API responses.
"""
from __future__ import annotations


class MarketError(Exception):
    code: str = "MarketError"
    status_code: int = 400

    def __init__(self, message: str | None = None, **context) -> None:
        self.message = message or self.code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict:
        out = {"error": self.code, "detail": self.message}
        if self.context:
            out["context"] = {k: str(v) for k, v in self.context.items()}
        return out


# Listing Registry
class InvalidPrice(MarketError):
    code = "InvalidPrice"
    status_code = 422


class InvalidExpiration(MarketError):
    code = "InvalidExpiration"
    status_code = 422


class NotOwnerOrNotApproved(MarketError):
    code = "NotOwnerOrNotApproved"
    status_code = 403


class NotSeller(MarketError):
    code = "NotSeller"
    status_code = 403


class ListingNotFound(MarketError):
    code = "ListingNotFound"
    status_code = 404


# Settlement Engine
class ListingExpired(MarketError):
    code = "ListingExpired"
    status_code = 409


class IncorrectPayment(MarketError):
    code = "IncorrectPayment"
    status_code = 422


class TransferFailed(MarketError):
    code = "TransferFailed"
    status_code = 409


class PaymentFailed(MarketError):
    code = "PaymentFailed"
    status_code = 409


# Deployment
class InvalidFee(MarketError):
    code = "InvalidFee"
    status_code = 422


class ContractNotFound(MarketError):
    code = "ContractNotFound"
    status_code = 404


# Execution environment (ledger)
class AccountNotFound(MarketError):
    code = "AccountNotFound"
    status_code = 404


class InsufficientFunds(MarketError):
    code = "InsufficientFunds"
    status_code = 402


# Token collaborator
class TokenError(MarketError):
    code = "TokenError"
    status_code = 409


class TokenNotFound(TokenError):
    code = "TokenNotFound"
    status_code = 404


class TokenAlreadyMinted(TokenError):
    code = "TokenAlreadyMinted"
    status_code = 409


class NotMinter(TokenError):
    code = "NotMinter"
    status_code = 403


class NotTokenOwnerOrApproved(TokenError):
    code = "NotTokenOwnerOrApproved"
    status_code = 403
