from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

Json = Dict[str, Any]


@dataclass
class TokenError(Exception):
    """Canonical error type for every rejected ledger operation.

    A raised TokenError always means the operation left the state untouched.
    """

    code: str
    reason: str
    details: Optional[Json] = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class InvalidIdentifier(TokenError):
    def __init__(self, reason: str = "invalid_identifier", details: Optional[Json] = None) -> None:
        super().__init__("INVALID_ID", reason, details)


class AlreadyClaimed(TokenError):
    def __init__(self, reason: str = "identifier_already_claimed", details: Optional[Json] = None) -> None:
        super().__init__("CLAIMED", reason, details)


class Unauthorized(TokenError):
    def __init__(self, reason: str = "endorsement_rejected", details: Optional[Json] = None) -> None:
        super().__init__("UNAUTHORIZED", reason, details)


class InsufficientBalance(TokenError):
    def __init__(self, reason: str = "balance_too_low", details: Optional[Json] = None) -> None:
        super().__init__("INSUFFICIENT_BALANCE", reason, details)


class InsufficientAllowance(TokenError):
    def __init__(self, reason: str = "allowance_too_low", details: Optional[Json] = None) -> None:
        super().__init__("INSUFFICIENT_ALLOWANCE", reason, details)


class ZeroDividend(TokenError):
    def __init__(self, reason: str = "nothing_to_withdraw", details: Optional[Json] = None) -> None:
        super().__init__("ZERO_DIVIDEND", reason, details)


class Forbidden(TokenError):
    def __init__(self, reason: str = "controller_required", details: Optional[Json] = None) -> None:
        super().__init__("FORBIDDEN", reason, details)


class AlreadyStarted(TokenError):
    def __init__(self, reason: str = "emission_already_started", details: Optional[Json] = None) -> None:
        super().__init__("ALREADY_STARTED", reason, details)


class InvalidArgument(TokenError):
    def __init__(self, reason: str = "invalid_argument", details: Optional[Json] = None) -> None:
        super().__init__("INVALID_ARGUMENT", reason, details)


class BadNonce(TokenError):
    def __init__(self, reason: str = "unexpected_nonce", details: Optional[Json] = None) -> None:
        super().__init__("BAD_NONCE", reason, details)


__all__ = [
    "TokenError",
    "InvalidIdentifier",
    "AlreadyClaimed",
    "Unauthorized",
    "InsufficientBalance",
    "InsufficientAllowance",
    "ZeroDividend",
    "Forbidden",
    "AlreadyStarted",
    "InvalidArgument",
    "BadNonce",
]
