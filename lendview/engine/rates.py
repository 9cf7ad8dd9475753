"""Rate aggregation.

Rate curves live on the ledger. This module only fetches their results and
combines them (utilization, weighted and simple averages).
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Iterable, TypeVar

from ..protocols.lending.reader import LendingPoolReader

T = TypeVar("T")


def utilization(total_deposits: float, total_borrows: float) -> float:
    """``total_borrows / total_deposits`` as a ratio; 0 when nothing is deposited."""
    if total_deposits <= 0:
        return 0.0
    return total_borrows / total_deposits


def weighted_average(
    items: Iterable[T],
    weight_fn: Callable[[T], float],
    value_fn: Callable[[T], float],
) -> float:
    """Σ(weight·value) / Σ(weight); 0 when the weights sum to 0."""
    total_weight = 0.0
    total = 0.0
    for item in items:
        weight = weight_fn(item)
        total_weight += weight
        total += weight * value_fn(item)
    if total_weight == 0:
        return 0.0
    return total / total_weight


def mean(values: Iterable[float]) -> float:
    values = list(values)
    if not values:
        return 0.0
    return sum(values) / len(values)


@dataclass(frozen=True)
class MarketRates:
    """Market totals (decimal-normalized) and the rates the ledger quotes at them."""

    total_deposits: float
    total_borrows: float
    supply_rate: float = 0.0
    borrow_rate: float = 0.0

    @property
    def utilization(self) -> float:
        return utilization(self.total_deposits, self.total_borrows)


async def _no_rate() -> float:
    return 0.0


class RateEngine:
    """Supply and borrow rates for one asset, in percent."""

    def __init__(self, reader: LendingPoolReader) -> None:
        self._reader = reader

    def _raw(self, asset_id: str, total_deposits: float, total_borrows: float) -> tuple[int, int]:
        asset = self._reader.registry.get(asset_id)
        return asset.to_units(total_deposits), asset.to_units(total_borrows)

    async def supply_rate(
        self, asset_id: str, total_deposits: float, total_borrows: float
    ) -> float:
        raw_deposits, raw_borrows = self._raw(asset_id, total_deposits, total_borrows)
        return await self._reader.supply_rate(asset_id, raw_deposits, raw_borrows)

    async def borrow_rate(
        self,
        asset_id: str,
        total_deposits: float,
        total_borrows: float,
        volatility: int = 0,
        liquidity: int = 0,
        price_deviation: int = 0,
    ) -> float:
        raw_deposits, raw_borrows = self._raw(asset_id, total_deposits, total_borrows)
        return await self._reader.borrow_rate(
            asset_id, raw_deposits, raw_borrows, volatility, liquidity, price_deviation
        )

    async def market_rates(
        self, asset_id: str, supply: bool = True, borrow: bool = True
    ) -> MarketRates:
        """Read the asset's totals once and quote the requested rates at them.

        A rate that was not requested is reported as 0.
        """
        asset = self._reader.registry.get(asset_id)
        raw_deposits, raw_borrows = await self._reader.raw_market_totals(asset_id)
        supply_rate, borrow_rate = await asyncio.gather(
            self._reader.supply_rate(asset_id, raw_deposits, raw_borrows) if supply else _no_rate(),
            self._reader.borrow_rate(asset_id, raw_deposits, raw_borrows) if borrow else _no_rate(),
        )
        return MarketRates(
            total_deposits=asset.from_units(raw_deposits),
            total_borrows=asset.from_units(raw_borrows),
            supply_rate=supply_rate,
            borrow_rate=borrow_rate,
        )
