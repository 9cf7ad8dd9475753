"""Integration tests for portfolio aggregation over a fake ledger."""
from __future__ import annotations

import asyncio

import pytest

from lendview.cache import TTLCache
from lendview.config import AppConfig, ScalesConfig
from lendview.engine.rates import MarketRates, RateEngine
from lendview.engine.risk import RiskEngine, classify
from lendview.errors import ReadError
from lendview.models import PortfolioSummary, Position, PositionKind, RiskStatus
from lendview.protocols.lending.reader import (
    BALANCE_OF,
    GET_ACCRUED_DEBT,
    GET_BORROW_RATE,
    GET_HEALTH_FACTOR,
    GET_SUPPLY_RATE,
    GET_USER_COLLATERAL,
    GET_USER_DEPOSIT,
    TOTAL_BORROWS,
    TOTAL_DEPOSITS,
    VAULT_GET_APY,
    VAULT_TOTAL_ASSETS,
    VAULT_TOTAL_SHARES,
    VAULT_USER_SHARES,
    LendingPoolReader,
)
from lendview.registry import AssetRegistry
from lendview.services.portfolio import PortfolioAggregator, fold_positions, portfolio_key
from tests.conftest import (
    ACCOUNT,
    CELO,
    COLLATERAL_MANAGER,
    CUSD,
    INTEREST_MODEL,
    POOL,
    USDC,
    USDC_DEBT,
    VAULT,
    FakeClock,
    FakeLedger,
)

E18 = 10**18
E6 = 10**6


def _seed(ledger: FakeLedger) -> None:
    """cUSD: 1000 deposited at 5%, 800 as collateral. USDC: 400 borrowed, 410 owed at 8%."""
    ledger.on(POOL, GET_USER_DEPOSIT, [ACCOUNT, CUSD], 1000 * E18)
    ledger.on(POOL, TOTAL_DEPOSITS, [CUSD], 10_000 * E18)
    ledger.on(POOL, TOTAL_BORROWS, [CUSD], 5_000 * E18)
    ledger.on(POOL, GET_SUPPLY_RATE, [CUSD, 10_000 * E18, 5_000 * E18], 500)
    ledger.on(COLLATERAL_MANAGER, GET_USER_COLLATERAL, [ACCOUNT, CUSD], 800 * E18)
    ledger.on(USDC_DEBT, BALANCE_OF, [ACCOUNT], 400 * E6)
    ledger.on(USDC_DEBT, GET_ACCRUED_DEBT, [ACCOUNT], 410 * E6)
    ledger.on(INTEREST_MODEL, GET_BORROW_RATE, None, 800)
    ledger.on(COLLATERAL_MANAGER, GET_HEALTH_FACTOR, None, 150)


@pytest.fixture()
def reader(ledger: FakeLedger, registry: AssetRegistry, sample_app_config: AppConfig) -> LendingPoolReader:
    return LendingPoolReader(
        ledger, registry, sample_app_config.contracts, sample_app_config.scales
    )


@pytest.fixture()
def cache(clock: FakeClock) -> TTLCache:
    return TTLCache(clock=clock)


@pytest.fixture()
def aggregator(reader: LendingPoolReader, cache: TTLCache) -> PortfolioAggregator:
    return PortfolioAggregator(reader, cache, read_timeout=5)


class TestReader:
    @pytest.mark.asyncio
    async def test_native_deposit_through_vault_shares(
        self, reader: LendingPoolReader, ledger: FakeLedger
    ) -> None:
        ledger.on(VAULT, VAULT_USER_SHARES, [ACCOUNT, CELO], 50 * E18)
        ledger.on(VAULT, VAULT_TOTAL_SHARES, [CELO], 100 * E18)
        ledger.on(VAULT, VAULT_TOTAL_ASSETS, [CELO], 300 * E18)
        assert await reader.deposit_of(ACCOUNT, CELO) == 150.0

    @pytest.mark.asyncio
    async def test_native_supply_rate_from_vault(
        self, reader: LendingPoolReader, ledger: FakeLedger
    ) -> None:
        ledger.on(VAULT, VAULT_GET_APY, [CELO], 420)
        assert await reader.supply_rate(CELO) == 4.2
        assert await reader.borrow_rate(CELO) == 0.0

    @pytest.mark.asyncio
    async def test_no_debt_token_means_no_debt(
        self, reader: LendingPoolReader, ledger: FakeLedger
    ) -> None:
        assert await reader.debt_of(ACCOUNT, CELO) == 0.0
        assert ledger.count(GET_ACCRUED_DEBT) == 0

    @pytest.mark.asyncio
    async def test_health_ratio_scaled(self, reader: LendingPoolReader, ledger: FakeLedger) -> None:
        ledger.on(COLLATERAL_MANAGER, GET_HEALTH_FACTOR, [ACCOUNT, USDC], 125)
        assert await reader.health_ratio(ACCOUNT, USDC) == 1.25

    def test_debt_token_only_for_borrowable_assets(self, reader: LendingPoolReader) -> None:
        assert reader.debt_token_for(USDC) == USDC_DEBT
        assert reader.debt_token_for(USDC.upper().replace("0X", "0x")) == USDC_DEBT
        assert reader.debt_token_for(CELO) is None

    @pytest.mark.asyncio
    async def test_read_error_propagates(self, reader: LendingPoolReader, ledger: FakeLedger) -> None:
        ledger.on(POOL, GET_USER_DEPOSIT, None, ReadError("down"))
        with pytest.raises(ReadError):
            await reader.deposit_of(ACCOUNT, USDC)


class TestFoldPositions:
    def test_totals_are_sums_of_positions(self) -> None:
        positions = [
            Position(PositionKind.LENDING, "a", "A", 100.0, rate=4.0),
            Position(PositionKind.LENDING, "b", "B", 300.0, rate=8.0),
            Position(PositionKind.BORROWING, "c", "C", 50.0, accrued=5.0, health_ratio=2.0),
            Position(PositionKind.BORROWING, "d", "D", 45.0, health_ratio=1.0),
            Position(PositionKind.COLLATERAL, "a", "A", 200.0, health_ratio=2.0),
        ]
        summary = fold_positions("0xabc", positions)
        assert summary.total_deposits == 400.0
        assert summary.total_borrows == 100.0
        assert summary.total_collateral == 200.0
        assert summary.collateral_ratio == 200.0
        assert summary.net_apy == pytest.approx(7.0)
        assert summary.health_ratio == pytest.approx((55 * 2.0 + 45 * 1.0) / 100)

    def test_no_borrows(self) -> None:
        summary = fold_positions("0xabc", [Position(PositionKind.LENDING, "a", "A", 10.0)])
        assert summary.collateral_ratio == 0.0
        assert summary.health_ratio == 0.0


class TestSummarize:
    @pytest.mark.asyncio
    async def test_full_summary(self, aggregator: PortfolioAggregator, ledger: FakeLedger) -> None:
        _seed(ledger)
        summary = await aggregator.summarize(ACCOUNT)

        assert summary.account == ACCOUNT
        assert summary.failed_assets == ()
        assert summary.total_deposits == 1000.0
        assert summary.total_borrows == 410.0
        assert summary.total_collateral == 800.0
        assert summary.collateral_ratio == pytest.approx(800 / 410 * 100)
        assert summary.health_ratio == 1.5
        assert summary.net_apy == 5.0

        (lending,) = summary.positions_of(PositionKind.LENDING)
        assert (lending.symbol, lending.principal, lending.rate) == ("cUSD", 1000.0, 5.0)
        (borrowing,) = summary.positions_of(PositionKind.BORROWING)
        assert (borrowing.principal, borrowing.accrued, borrowing.rate) == (400.0, 10.0, 8.0)
        (collateral,) = summary.positions_of(PositionKind.COLLATERAL)
        assert collateral.health_ratio == 1.5

    @pytest.mark.asyncio
    async def test_empty_account_is_zero(self, aggregator: PortfolioAggregator) -> None:
        summary = await aggregator.summarize(ACCOUNT)
        assert summary == PortfolioSummary.zero(ACCOUNT)

    @pytest.mark.asyncio
    async def test_one_failing_asset_is_dropped(
        self, aggregator: PortfolioAggregator, ledger: FakeLedger
    ) -> None:
        _seed(ledger)
        ledger.on(USDC_DEBT, BALANCE_OF, [ACCOUNT], ReadError("debt token unreachable"))
        summary = await aggregator.summarize(ACCOUNT)

        assert summary.failed_assets == (USDC,)
        assert summary.total_deposits == 1000.0
        assert summary.total_borrows == 0.0
        assert summary.positions_of(PositionKind.BORROWING) == ()

    @pytest.mark.asyncio
    async def test_rate_failure_keeps_position(
        self, aggregator: PortfolioAggregator, ledger: FakeLedger
    ) -> None:
        _seed(ledger)
        ledger.on(
            POOL,
            GET_SUPPLY_RATE,
            [CUSD, 10_000 * E18, 5_000 * E18],
            ReadError("reverted", kind=ReadError.REVERT),
        )
        summary = await aggregator.summarize(ACCOUNT)
        (lending,) = summary.positions_of(PositionKind.LENDING)
        assert lending.principal == 1000.0
        assert lending.rate == 0.0

    @pytest.mark.asyncio
    async def test_all_failing_without_history_is_zero(
        self, aggregator: PortfolioAggregator, ledger: FakeLedger, cache: TTLCache
    ) -> None:
        ledger.default = ReadError("node down")
        summary = await aggregator.summarize(ACCOUNT)
        assert summary.total_deposits == 0.0
        assert summary.positions == ()
        assert cache.peek(portfolio_key(ACCOUNT)) is None

    @pytest.mark.asyncio
    async def test_all_failing_serves_previous_marked_stale(
        self,
        aggregator: PortfolioAggregator,
        ledger: FakeLedger,
        clock: FakeClock,
    ) -> None:
        _seed(ledger)
        first = await aggregator.summarize(ACCOUNT)
        clock.advance(31)

        ledger.responses.clear()
        ledger.default = ReadError("node down")
        second = await aggregator.summarize(ACCOUNT)

        assert second.stale
        assert second.total_deposits == first.total_deposits
        assert second.positions == first.positions

    @pytest.mark.asyncio
    async def test_cached_within_ttl(
        self, aggregator: PortfolioAggregator, ledger: FakeLedger, clock: FakeClock
    ) -> None:
        _seed(ledger)
        await aggregator.summarize(ACCOUNT)
        reads = ledger.count(GET_USER_DEPOSIT)
        clock.advance(10)
        await aggregator.summarize(ACCOUNT.upper().replace("0X", "0x"))
        assert ledger.count(GET_USER_DEPOSIT) == reads
        clock.advance(25)
        await aggregator.summarize(ACCOUNT)
        assert ledger.count(GET_USER_DEPOSIT) > reads

    @pytest.mark.asyncio
    async def test_concurrent_summaries_read_once(
        self, aggregator: PortfolioAggregator, ledger: FakeLedger
    ) -> None:
        _seed(ledger)
        a, b = await asyncio.gather(aggregator.summarize(ACCOUNT), aggregator.summarize(ACCOUNT))
        assert a == b
        # one deposit read per token asset; the native asset goes through the vault
        assert ledger.count(GET_USER_DEPOSIT) == 2

    @pytest.mark.asyncio
    async def test_refresh_ignores_freshness(
        self, aggregator: PortfolioAggregator, ledger: FakeLedger
    ) -> None:
        _seed(ledger)
        await aggregator.summarize(ACCOUNT)
        ledger.on(POOL, GET_USER_DEPOSIT, [ACCOUNT, CUSD], 2000 * E18)
        refreshed = await aggregator.refresh(ACCOUNT)
        assert refreshed.total_deposits == 2000.0
        assert (await aggregator.summarize(ACCOUNT)).total_deposits == 2000.0

    @pytest.mark.asyncio
    async def test_slow_asset_times_out_alone(
        self,
        reader: LendingPoolReader,
        cache: TTLCache,
        ledger: FakeLedger,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        _seed(ledger)
        ledger.on(POOL, GET_USER_DEPOSIT, [ACCOUNT, USDC], 50 * E6)
        call = ledger.call

        async def slow_usdc_deposit(contract, signature, args=(), *rest, **kwargs):
            if signature == GET_USER_DEPOSIT and list(args)[1:] == [USDC]:
                await asyncio.sleep(1)
            return await call(contract, signature, args, *rest, **kwargs)

        monkeypatch.setattr(ledger, "call", slow_usdc_deposit)
        aggregator = PortfolioAggregator(reader, cache, read_timeout=0.05)
        summary = await aggregator.summarize(ACCOUNT)

        assert summary.failed_assets == (USDC,)
        assert summary.total_deposits == 1000.0
        assert summary.total_borrows == 0.0

    @pytest.mark.asyncio
    async def test_net_apy_weighted_by_principal(
        self, aggregator: PortfolioAggregator, ledger: FakeLedger
    ) -> None:
        ledger.on(POOL, GET_USER_DEPOSIT, [ACCOUNT, CUSD], 100 * E18)
        ledger.on(POOL, GET_SUPPLY_RATE, [CUSD, 0, 0], 500)
        ledger.on(POOL, GET_USER_DEPOSIT, [ACCOUNT, USDC], 300 * E6)
        ledger.on(POOL, GET_SUPPLY_RATE, [USDC, 0, 0], 1000)

        summary = await aggregator.summarize(ACCOUNT)

        assert summary.total_deposits == 400.0
        assert summary.net_apy == pytest.approx(8.75)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("raw_health", "expected"),
        [(1_200_000, RiskStatus.WARNING), (1_199_999, RiskStatus.DANGER)],
    )
    async def test_borrowing_position_classified_at_warning_edge(
        self,
        ledger: FakeLedger,
        registry: AssetRegistry,
        sample_app_config: AppConfig,
        cache: TTLCache,
        raw_health: int,
        expected: RiskStatus,
    ) -> None:
        reader = LendingPoolReader(
            ledger, registry, sample_app_config.contracts, ScalesConfig(health_divisor=1_000_000)
        )
        ledger.on(USDC_DEBT, BALANCE_OF, [ACCOUNT], 400 * E6)
        ledger.on(USDC_DEBT, GET_ACCRUED_DEBT, [ACCOUNT], 400 * E6)
        ledger.on(COLLATERAL_MANAGER, GET_HEALTH_FACTOR, [ACCOUNT, USDC], raw_health)

        summary = await PortfolioAggregator(reader, cache).summarize(ACCOUNT)

        (borrowing,) = summary.positions_of(PositionKind.BORROWING)
        assert classify(borrowing.health_ratio) is expected


class _FixedRisk(RiskEngine):
    async def health_ratio(self, account: str, asset_id: str) -> float:
        return 2.0


class _FixedRates(RateEngine):
    async def market_rates(self, asset_id: str, supply: bool = True, borrow: bool = True) -> MarketRates:
        return MarketRates(0.0, 0.0, supply_rate=7.0 if supply else 0.0, borrow_rate=9.0 if borrow else 0.0)


class TestEngines:
    @pytest.mark.asyncio
    async def test_positions_use_injected_engines(
        self, reader: LendingPoolReader, cache: TTLCache, ledger: FakeLedger
    ) -> None:
        _seed(ledger)
        aggregator = PortfolioAggregator(
            reader, cache, rates=_FixedRates(reader), risk=_FixedRisk(reader)
        )
        summary = await aggregator.summarize(ACCOUNT)

        (lending,) = summary.positions_of(PositionKind.LENDING)
        (borrowing,) = summary.positions_of(PositionKind.BORROWING)
        assert lending.rate == 7.0
        assert borrowing.rate == 9.0
        assert summary.health_ratio == 2.0
        assert ledger.count(GET_HEALTH_FACTOR) == 0
        assert ledger.count(GET_SUPPLY_RATE) == 0
