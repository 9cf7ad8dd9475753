"""Synchronous input checks, run before any ledger write."""
from __future__ import annotations

import math

from .errors import ValidationError
from .models import AssetDescriptor


def validate_amount(asset: AssetDescriptor, amount: float) -> float:
    """Check ``amount`` against the asset's configured bounds and return it."""
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {amount!r}", field="amount") from None
    if math.isnan(value) or math.isinf(value) or value <= 0:
        raise ValidationError("Amount must be greater than zero", field="amount")
    if value < asset.min_amount:
        raise ValidationError(
            f"Minimum amount for {asset.symbol} is {asset.min_amount:g}", field="amount"
        )
    if value > asset.max_amount:
        raise ValidationError(
            f"Maximum amount for {asset.symbol} is {asset.max_amount:g}", field="amount"
        )
    return value


def validate_withdrawal(asset: AssetDescriptor, amount: float, withdrawable: float) -> float:
    """Reject a withdrawal above what the ledger reports as withdrawable."""
    value = float(amount)
    if math.isnan(value) or value <= 0:
        raise ValidationError("Amount must be greater than zero", field="amount")
    if value > withdrawable:
        raise ValidationError(
            f"Cannot withdraw {value:g} {asset.symbol}; only {withdrawable:g} available",
            field="amount",
        )
    return value
