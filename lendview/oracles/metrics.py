"""Derived market metrics — pure functions."""
from __future__ import annotations

import math
from typing import Sequence


def volatility(prices: Sequence[float]) -> float:
    """Population std-dev of simple returns, as a percentage.

    Fewer than two prices (or a zero price) gives 0.
    """
    returns = [
        (curr - prev) / prev
        for prev, curr in zip(prices, prices[1:])
        if prev
    ]
    if not returns:
        return 0.0
    mean = sum(returns) / len(returns)
    variance = sum((r - mean) ** 2 for r in returns) / len(returns)
    return math.sqrt(variance) * 100


def liquidity(volume: float, market_cap: float) -> float:
    """24h volume to market cap ratio, as a percentage."""
    if not market_cap:
        return 0.0
    return volume / market_cap * 100
