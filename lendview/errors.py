"""Error taxonomy shared across the package."""
from __future__ import annotations

from typing import Any

# EIP-1193 "user rejected request" plus the ethers-style string code.
USER_REJECTION_CODES = (4001, "4001", "ACTION_REJECTED")
_USER_REJECTION_PHRASES = ("user rejected", "user denied", "rejected by user")


class LendviewError(Exception):
    """Base class for all package errors."""


class ReadError(LendviewError):
    """A ledger/provider read failed.

    ``kind`` is one of ``transport``, ``timeout``, ``revert`` or ``malformed``.
    """

    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    REVERT = "revert"
    MALFORMED = "malformed"

    def __init__(self, message: str, kind: str = TRANSPORT) -> None:
        super().__init__(message)
        self.kind = kind


class DecodeError(LendviewError):
    """A raw log did not match the shape expected for its signature."""


class ValidationError(LendviewError):
    """Input rejected before any ledger write was attempted."""

    def __init__(self, message: str, field: str = "") -> None:
        super().__init__(message)
        self.field = field


class UserRejectedError(LendviewError):
    """The account holder declined a signature request."""


class MultisigUnavailableError(LendviewError):
    """The multisig backend could not accept or report on a batch."""


class UnknownAssetError(KeyError):
    """An asset id or symbol has no registry entry (configuration bug)."""

    def __str__(self) -> str:
        return f"Unknown asset: {self.args[0] if self.args else ''}"


def is_user_rejection(error: BaseException | Any) -> bool:
    """True when ``error`` means the signer declined, not that something broke."""
    if isinstance(error, UserRejectedError):
        return True
    code = getattr(error, "code", None)
    if code in USER_REJECTION_CODES:
        return True
    message = str(error).lower()
    return any(phrase in message for phrase in _USER_REJECTION_PHRASES)
