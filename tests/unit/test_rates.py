"""Unit tests for rate aggregation helpers."""
from __future__ import annotations

import pytest

from lendview.config import ContractsConfig, ScalesConfig
from lendview.engine.rates import MarketRates, RateEngine, mean, utilization, weighted_average
from lendview.protocols.lending.reader import (
    GET_BORROW_RATE,
    GET_SUPPLY_RATE,
    TOTAL_BORROWS,
    TOTAL_DEPOSITS,
    LendingPoolReader,
)
from lendview.registry import AssetRegistry
from tests.conftest import INTEREST_MODEL, POOL, USDC, FakeLedger

E6 = 10**6


class TestUtilization:
    def test_ratio(self) -> None:
        assert utilization(1000.0, 250.0) == 0.25
        assert utilization(100.0, 40.0) == 0.40

    def test_zero_deposits(self) -> None:
        assert utilization(0.0, 100.0) == 0.0

    def test_bounded_when_borrows_within_deposits(self) -> None:
        for borrows in (0.0, 1.0, 50.0, 100.0):
            assert 0.0 <= utilization(100.0, borrows) <= 1.0


class TestWeightedAverage:
    def test_principal_weighted_yield(self) -> None:
        items = [(100.0, 5.0), (300.0, 10.0)]
        assert weighted_average(items, lambda i: i[0], lambda i: i[1]) == pytest.approx(8.75)

    def test_weights(self) -> None:
        items = [(100.0, 5.0), (300.0, 1.0)]
        result = weighted_average(items, lambda i: i[0], lambda i: i[1])
        assert result == pytest.approx(2.0)

    def test_zero_weight_is_zero(self) -> None:
        assert weighted_average([(0.0, 5.0)], lambda i: i[0], lambda i: i[1]) == 0.0

    def test_empty(self) -> None:
        assert weighted_average([], lambda i: 1.0, lambda i: 1.0) == 0.0

    def test_between_min_and_max(self) -> None:
        items = [(1.0, 3.0), (2.0, 7.0), (5.0, 4.0)]
        result = weighted_average(items, lambda i: i[0], lambda i: i[1])
        assert 3.0 <= result <= 7.0


class TestMean:
    def test_mean(self) -> None:
        assert mean([1.0, 2.0, 3.0]) == 2.0

    def test_empty(self) -> None:
        assert mean([]) == 0.0


class TestRateEngine:
    @pytest.fixture()
    def engine(self, registry: AssetRegistry, ledger: FakeLedger) -> RateEngine:
        contracts = ContractsConfig(lending_pool=POOL, interest_model=INTEREST_MODEL)
        return RateEngine(LendingPoolReader(ledger, registry, contracts, ScalesConfig()))

    @pytest.mark.asyncio
    async def test_supply_rate_passes_raw_totals(
        self, engine: RateEngine, ledger: FakeLedger
    ) -> None:
        ledger.on(POOL, GET_SUPPLY_RATE, [USDC, 1_000_000_000, 250_000_000], 325)
        assert await engine.supply_rate(USDC, 1000.0, 250.0) == 3.25

    @pytest.mark.asyncio
    async def test_borrow_rate_uses_interest_model(
        self, engine: RateEngine, ledger: FakeLedger
    ) -> None:
        ledger.on(INTEREST_MODEL, GET_BORROW_RATE, [USDC, 1_000_000_000, 250_000_000, 0, 0, 0], 800)
        assert await engine.borrow_rate(USDC, 1000.0, 250.0) == 8.0

    @pytest.mark.asyncio
    async def test_market_rates_reads_totals_once(
        self, engine: RateEngine, ledger: FakeLedger
    ) -> None:
        ledger.on(POOL, TOTAL_DEPOSITS, [USDC], 2_000 * E6)
        ledger.on(POOL, TOTAL_BORROWS, [USDC], 500 * E6)
        ledger.on(POOL, GET_SUPPLY_RATE, [USDC, 2_000 * E6, 500 * E6], 300)
        ledger.on(INTEREST_MODEL, GET_BORROW_RATE, [USDC, 2_000 * E6, 500 * E6, 0, 0, 0], 900)

        rates = await engine.market_rates(USDC)

        assert rates == MarketRates(2000.0, 500.0, supply_rate=3.0, borrow_rate=9.0)
        assert rates.utilization == 0.25
        assert ledger.count(TOTAL_DEPOSITS) == 1

    @pytest.mark.asyncio
    async def test_market_rates_skips_unrequested(
        self, engine: RateEngine, ledger: FakeLedger
    ) -> None:
        ledger.on(POOL, GET_SUPPLY_RATE, None, 300)
        rates = await engine.market_rates(USDC, borrow=False)
        assert rates.supply_rate == 3.0
        assert rates.borrow_rate == 0.0
        assert ledger.count(GET_BORROW_RATE) == 0
