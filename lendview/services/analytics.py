"""Protocol-wide analytics: TVL, utilization and average rates."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from ..cache import ANALYTICS, MISS, TTLCache, make_key
from ..engine.rates import RateEngine, mean, utilization
from ..models import AssetDescriptor, ProtocolAnalytics, TokenAnalytics
from ..protocols.lending.reader import LendingPoolReader
from ..results import Err, safe_read

logger = logging.getLogger(__name__)

ANALYTICS_KEY = make_key(ANALYTICS, "protocol")


class AnalyticsService:
    def __init__(
        self, reader: LendingPoolReader, cache: TTLCache, rates: RateEngine | None = None
    ) -> None:
        self._reader = reader
        self._cache = cache
        self._rates = rates or RateEngine(reader)

    async def protocol_analytics(self) -> ProtocolAnalytics:
        cached = self._cache.get(ANALYTICS_KEY)
        if cached is not MISS:
            return cached
        async with self._cache.lock(ANALYTICS_KEY):
            cached = self._cache.get(ANALYTICS_KEY)
            if cached is not MISS:
                return cached
            return await self._compute()

    async def refresh(self) -> ProtocolAnalytics:
        async with self._cache.lock(ANALYTICS_KEY):
            return await self._compute()

    async def token_analytics(self, asset: AssetDescriptor) -> TokenAnalytics:
        rates = await self._rates.market_rates(asset.id)
        return TokenAnalytics(
            asset_id=asset.id,
            symbol=asset.symbol,
            total_deposits=rates.total_deposits,
            total_borrows=rates.total_borrows,
            utilization=rates.utilization * 100,
            borrow_rate=rates.borrow_rate,
            supply_rate=rates.supply_rate,
        )

    async def _compute(self) -> ProtocolAnalytics:
        assets = list(self._reader.registry)
        results = await asyncio.gather(
            *(safe_read(self.token_analytics(a), what=f"{a.symbol} analytics") for a in assets)
        )

        tokens: list[TokenAnalytics] = []
        for asset, result in zip(assets, results):
            if isinstance(result, Err):
                logger.warning("Dropping %s from analytics: %s", asset.symbol, result.error)
                continue
            tokens.append(result.value)

        if assets and not tokens:
            logger.warning("Analytics unavailable for every asset")
            previous = self._cache.peek(ANALYTICS_KEY)
            if previous is not None:
                return replace(previous.value, stale=True)
            return ProtocolAnalytics(stale=True)

        total_supplied = sum(t.total_deposits for t in tokens)
        total_borrowed = sum(t.total_borrows for t in tokens)
        analytics = ProtocolAnalytics(
            tvl=total_supplied,
            total_borrowed=total_borrowed,
            total_supplied=total_supplied,
            utilization=utilization(total_supplied, total_borrowed) * 100,
            average_borrow_rate=mean(t.borrow_rate for t in tokens),
            average_supply_rate=mean(t.supply_rate for t in tokens),
            tokens=tuple(tokens),
        )
        self._cache.set(ANALYTICS_KEY, analytics)
        return analytics
