"""Pure scaling functions for lending pool values — no I/O."""
from __future__ import annotations


def scale_rate(raw: int, divisor: float) -> float:
    """Ledger basis-point rate → percent.

    Examples:
        scale_rate(500, 100) → 5.0
    """
    if divisor <= 0:
        raise ValueError("rate divisor must be positive")
    return int(raw) / divisor


def scale_health(raw: int, divisor: float) -> float:
    """Ledger health factor (×100) → unitless ratio, e.g. 150 → 1.5."""
    if divisor <= 0:
        raise ValueError("health divisor must be positive")
    return int(raw) / divisor


def shares_to_assets(shares: int, total_shares: int, total_assets: int) -> int:
    """Vault share balance → underlying raw units (0 for an empty vault)."""
    if total_shares <= 0:
        return 0
    return shares * total_assets // total_shares


def accrued_interest(principal: float, accrued_debt: float) -> float:
    """Interest on top of principal; never negative."""
    return max(accrued_debt - principal, 0.0)
