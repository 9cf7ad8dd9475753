"""Portfolio aggregation: per-account positions folded into one summary."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from ..cache import LIVE, MISS, TTLCache, make_key
from ..engine.rates import RateEngine, weighted_average
from ..engine.risk import RiskEngine
from ..models import AssetDescriptor, PortfolioSummary, Position, PositionKind
from ..protocols.lending import parser
from ..protocols.lending.reader import LendingPoolReader
from ..results import Err, safe_read

logger = logging.getLogger(__name__)


def portfolio_key(account: str) -> str:
    return make_key(LIVE, "portfolio", account.lower())


def fold_positions(
    account: str,
    positions: list[Position],
    failed_assets: tuple[str, ...] = (),
) -> PortfolioSummary:
    """Fold a position list into totals and weighted averages."""
    lending = [p for p in positions if p.kind is PositionKind.LENDING]
    borrowing = [p for p in positions if p.kind is PositionKind.BORROWING]
    collateral = [p for p in positions if p.kind is PositionKind.COLLATERAL]

    total_deposits = sum(p.principal for p in lending)
    total_borrows = sum(p.total for p in borrowing)
    total_collateral = sum(p.principal for p in collateral)

    collateral_ratio = total_collateral / total_borrows * 100 if total_borrows > 0 else 0.0
    health_ratio = weighted_average(
        [p for p in borrowing if p.health_ratio],
        lambda p: p.total,
        lambda p: p.health_ratio or 0.0,
    )
    net_apy = weighted_average(lending, lambda p: p.principal, lambda p: p.rate)

    return PortfolioSummary(
        account=account,
        total_deposits=total_deposits,
        total_borrows=total_borrows,
        total_collateral=total_collateral,
        collateral_ratio=collateral_ratio,
        health_ratio=health_ratio,
        net_apy=net_apy,
        positions=tuple(positions),
        failed_assets=failed_assets,
    )


class PortfolioAggregator:
    """Builds ``PortfolioSummary`` values through the cache.

    One asset failing to read drops that asset only. If every asset fails,
    the last cached summary is returned marked stale, or a zero summary.
    """

    def __init__(
        self,
        reader: LendingPoolReader,
        cache: TTLCache,
        rates: RateEngine | None = None,
        risk: RiskEngine | None = None,
        read_timeout: float | None = None,
    ) -> None:
        self._reader = reader
        self._cache = cache
        self._rates = rates or RateEngine(reader)
        self._risk = risk or RiskEngine(reader)
        self._read_timeout = read_timeout

    async def summarize(self, account: str) -> PortfolioSummary:
        key = portfolio_key(account)
        cached = self._cache.get(key)
        if cached is not MISS:
            return cached
        async with self._cache.lock(key):
            cached = self._cache.get(key)
            if cached is not MISS:
                return cached
            return await self._compute(account, key)

    async def refresh(self, account: str) -> PortfolioSummary:
        """Recompute regardless of freshness; serialized per account."""
        key = portfolio_key(account)
        async with self._cache.lock(key):
            return await self._compute(account, key)

    async def _compute(self, account: str, key: str) -> PortfolioSummary:
        assets = list(self._reader.registry)
        results = await asyncio.gather(
            *(
                safe_read(
                    self._read_asset(account, asset),
                    what=f"{asset.symbol} positions",
                    timeout=self._read_timeout,
                )
                for asset in assets
            )
        )

        positions: list[Position] = []
        failed: list[str] = []
        for asset, result in zip(assets, results):
            if isinstance(result, Err):
                logger.warning(
                    "Skipping %s for %s: %s", asset.symbol, account, result.error
                )
                failed.append(asset.id)
                continue
            positions.extend(result.value)

        if assets and len(failed) == len(assets):
            logger.warning("All asset reads failed for %s; serving fallback summary", account)
            previous = self._cache.peek(key)
            if previous is not None:
                return replace(previous.value, stale=True)
            return PortfolioSummary.zero(account)

        summary = fold_positions(account, positions, tuple(failed))
        self._cache.set(key, summary)
        return summary

    async def _read_asset(self, account: str, asset: AssetDescriptor) -> list[Position]:
        reader = self._reader
        deposit, principal, debt, collateral = await asyncio.gather(
            reader.deposit_of(account, asset.id),
            reader.debt_principal_of(account, asset.id),
            reader.debt_of(account, asset.id),
            reader.collateral_of(account, asset.id),
        )
        borrowed = max(principal, debt)
        if deposit <= 0 and borrowed <= 0 and collateral <= 0:
            return []

        supply_rate = borrow_rate = 0.0
        health: float | None = None

        if deposit > 0 or borrowed > 0:
            rates = await safe_read(
                self._rates.market_rates(asset.id, supply=deposit > 0, borrow=borrowed > 0),
                f"{asset.symbol} rates",
            )
            if rates.ok:
                supply_rate = rates.value.supply_rate
                borrow_rate = rates.value.borrow_rate

        if borrowed > 0 or collateral > 0:
            health = (
                await safe_read(
                    self._risk.health_ratio(account, asset.id), f"{asset.symbol} health"
                )
            ).unwrap_or(None)

        positions: list[Position] = []
        if deposit > 0:
            positions.append(
                Position(
                    kind=PositionKind.LENDING,
                    asset_id=asset.id,
                    symbol=asset.symbol,
                    principal=deposit,
                    rate=supply_rate,
                )
            )
        if borrowed > 0:
            base = principal if principal > 0 else debt
            positions.append(
                Position(
                    kind=PositionKind.BORROWING,
                    asset_id=asset.id,
                    symbol=asset.symbol,
                    principal=base,
                    accrued=parser.accrued_interest(base, debt),
                    rate=borrow_rate,
                    health_ratio=health,
                )
            )
        if collateral > 0:
            positions.append(
                Position(
                    kind=PositionKind.COLLATERAL,
                    asset_id=asset.id,
                    symbol=asset.symbol,
                    principal=collateral,
                    health_ratio=health,
                )
            )
        return positions
