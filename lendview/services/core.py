"""Lending core — wires the services together and exposes the public operations."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Iterable, Sequence

from ..cache import ANALYTICS, LIVE, MARKET, TTLCache
from ..chains.evm import EvmClient
from ..config import AppConfig
from ..engine.rates import RateEngine
from ..engine.risk import RiskEngine, classify, scan_for_liquidatable
from ..errors import MultisigUnavailableError, ReadError, ValidationError, is_user_rejection
from ..interfaces.ledger import LedgerGateway
from ..interfaces.multisig import MultisigBackend
from ..models import (
    AuthorizationId,
    BatchedAuthorization,
    DirectSubmission,
    DomainEvent,
    MarketTrend,
    Operation,
    OutcomeStatus,
    PortfolioSummary,
    Position,
    ProtocolAnalytics,
    Recommendation,
    RiskStatus,
    SubmissionOutcome,
    YieldForecast,
)
from ..multisig import SafeRelayClient
from ..oracles import CoinGeckoClient, DefiLlamaClient, OpenRouterClient
from ..protocols.lending import LendingPoolReader, OperationFactory
from ..registry import AssetRegistry
from .analytics import AnalyticsService
from .authorization import BatchedAuthorizationBuilder, DirectSubmitter
from .events import EventIngestionPipeline
from .market import MarketService
from .portfolio import PortfolioAggregator
from .scheduler import PollingScheduler
from .withdrawals import WithdrawalGuard

logger = logging.getLogger(__name__)

# Polling keys.
PORTFOLIO = "portfolio"
ANALYTICS_POLL = "analytics"
EVENTS = "events"
MARKET_POLL = "market"
POLL_KEYS = (PORTFOLIO, ANALYTICS_POLL, EVENTS, MARKET_POLL)


class LendingCore:
    """Entry point for consumers: read views, submissions and polling."""

    def __init__(
        self,
        config: AppConfig,
        gateway: LedgerGateway | None = None,
        multisig: MultisigBackend | None = None,
        clock: Callable[[], float] = time.monotonic,
        scheduler: PollingScheduler | None = None,
        market: MarketService | None = None,
        sender: str | None = None,
    ) -> None:
        self._config = config
        self.gateway: LedgerGateway = gateway or EvmClient(config.ledger)
        self.registry = AssetRegistry.from_config(config)
        self.cache = TTLCache(
            ttls={
                LIVE: config.cache.live_ttl,
                ANALYTICS: config.cache.analytics_ttl,
                MARKET: config.cache.market_ttl,
            },
            clock=clock,
            max_entries=config.cache.max_entries,
        )

        self.reader = LendingPoolReader(
            self.gateway, self.registry, config.contracts, config.scales
        )
        self.rates = RateEngine(self.reader)
        self.risk = RiskEngine(self.reader)
        self.portfolio = PortfolioAggregator(
            self.reader,
            self.cache,
            rates=self.rates,
            risk=self.risk,
            read_timeout=float(config.ledger.rpc_timeout),
        )
        self.events = EventIngestionPipeline(
            self.gateway, config.contracts.lending_pool, self.cache
        )
        self.analytics = AnalyticsService(self.reader, self.cache, rates=self.rates)
        self.market = market or MarketService(
            config.market,
            self.cache,
            CoinGeckoClient(config.market),
            DefiLlamaClient(config.market),
            OpenRouterClient(config.market),
        )
        self.operations = OperationFactory(self.registry, config.contracts)
        self.batches = BatchedAuthorizationBuilder(
            multisig or SafeRelayClient(config.multisig)
        )
        self.withdrawals = WithdrawalGuard(self.reader, self.risk)
        self.direct = DirectSubmitter(self.gateway, sender)
        self._sender = sender
        self.scheduler = scheduler or PollingScheduler()

    @property
    def config(self) -> AppConfig:
        return self._config

    # ------------------------------------------------------------------
    # Read views
    # ------------------------------------------------------------------

    async def summarize(self, account: str) -> PortfolioSummary:
        return await self.portfolio.summarize(account)

    async def fetch_events(
        self, from_block: int | str, to_block: int | str = "latest"
    ) -> list[DomainEvent]:
        return await self.events.fetch_events(from_block, to_block)

    async def recent_events(self, lookback_blocks: int | None = None) -> list[DomainEvent]:
        return await self.events.recent_events(
            lookback_blocks or self._config.polling.events_lookback_blocks
        )

    @staticmethod
    def classify(ratio: float) -> RiskStatus:
        return classify(ratio)

    @staticmethod
    def scan_for_liquidatable(positions: Iterable[Position]) -> list[Position]:
        return scan_for_liquidatable(positions)

    async def liquidation_watch(self, accounts: Sequence[str]) -> dict[str, list[Position]]:
        """Danger-band positions per account, skipping accounts with none."""
        summaries = await asyncio.gather(*(self.summarize(a) for a in accounts))
        watch: dict[str, list[Position]] = {}
        for account, summary in zip(accounts, summaries):
            flagged = scan_for_liquidatable(summary.positions)
            if flagged:
                watch[account] = flagged
        return watch

    async def protocol_analytics(self) -> ProtocolAnalytics:
        return await self.analytics.protocol_analytics()

    async def recommend(self, risk_profile: str = "medium") -> list[Recommendation]:
        return await self.market.recommend(risk_profile)

    async def trends(self) -> MarketTrend:
        return await self.market.trends()

    async def forecast(self, asset_id: str) -> YieldForecast:
        return await self.market.forecast(asset_id)

    # ------------------------------------------------------------------
    # Submissions (user-triggered only, never retried)
    # ------------------------------------------------------------------

    async def submit_batched(
        self, operations: Sequence[Operation], account: str | None = None
    ) -> SubmissionOutcome:
        """Submit for co-signing.

        Withdrawals are checked against ``account`` (the configured Safe by
        default) before anything reaches the backend.
        """
        try:
            await self.withdrawals.check(
                account or self._config.multisig.safe_address, operations
            )
            authorization = await self.batches.submit_batched(operations)
        except ValidationError as e:
            return SubmissionOutcome(OutcomeStatus.INVALID, message=str(e))
        except Exception as e:
            return self._failure_outcome("Batched submission", e)
        return SubmissionOutcome(OutcomeStatus.SUBMITTED, submission=authorization)

    async def submit_direct(
        self, operation: Operation, account: str | None = None
    ) -> SubmissionOutcome:
        try:
            await self.withdrawals.check(account or self._sender, [operation])
            submission = await self.direct.submit(operation)
        except ValidationError as e:
            return SubmissionOutcome(OutcomeStatus.INVALID, message=str(e))
        except Exception as e:
            return self._failure_outcome("Direct submission", e)
        return SubmissionOutcome(OutcomeStatus.SUBMITTED, submission=submission)

    @staticmethod
    def _failure_outcome(what: str, error: Exception) -> SubmissionOutcome:
        if is_user_rejection(error):
            logger.info("%s not completed: declined by user", what)
            return SubmissionOutcome(OutcomeStatus.NOT_COMPLETED, message="Declined by user")
        if isinstance(error, (MultisigUnavailableError, ReadError)):
            logger.warning("%s failed: %s", what, error)
        else:
            logger.error("%s failed: %s", what, error)
        return SubmissionOutcome(OutcomeStatus.FAILED, message=str(error))

    async def poll_batched(self, authorization_id: str) -> BatchedAuthorization:
        return await self.batches.poll_status(AuthorizationId(authorization_id))

    async def confirm_direct(
        self, submission: DirectSubmission, timeout: float = 120.0
    ) -> DirectSubmission:
        return await self.direct.confirm(submission, timeout=timeout)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def _poll_target(self, key: str, account: str | None):
        polling = self._config.polling
        if key == PORTFOLIO:
            if not account:
                raise ValueError("portfolio polling needs an account")
            return f"{PORTFOLIO}:{account.lower()}", polling.portfolio, (
                lambda: self.portfolio.refresh(account)
            )
        if key == ANALYTICS_POLL:
            return key, polling.analytics, self.analytics.refresh
        if key == EVENTS:
            return key, polling.events, (
                lambda: self.events.refresh(polling.events_lookback_blocks)
            )
        if key == MARKET_POLL:
            return key, polling.market, self.market.refresh
        raise ValueError(f"Unknown polling key: {key}")

    def start_polling(self, key: str, account: str | None = None) -> bool:
        poll_key, interval, refresh = self._poll_target(key, account)
        return self.scheduler.start(poll_key, interval, refresh)

    async def stop_polling(self, key: str, account: str | None = None) -> None:
        poll_key = f"{PORTFOLIO}:{account.lower()}" if key == PORTFOLIO and account else key
        await self.scheduler.stop(poll_key)

    def start_all(self, accounts: Iterable[str] | None = None) -> None:
        for account in accounts if accounts is not None else self._config.accounts:
            self.start_polling(PORTFOLIO, account)
        for key in (ANALYTICS_POLL, EVENTS, MARKET_POLL):
            self.start_polling(key)

    async def refresh(self, key: str, account: str | None = None) -> None:
        """Explicit refresh, serialized with any scheduled tick for the same key."""
        poll_key, _, refresh = self._poll_target(key, account)
        if self.scheduler.is_running(poll_key):
            await self.scheduler.trigger(poll_key)
        else:
            await refresh()

    async def close(self) -> None:
        await self.scheduler.stop_all()
