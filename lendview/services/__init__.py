"""Service modules"""
from .analytics import AnalyticsService
from .authorization import BatchedAuthorizationBuilder, DirectSubmitter
from .core import LendingCore
from .events import EventIngestionPipeline
from .market import MarketService
from .portfolio import PortfolioAggregator
from .scheduler import PollingScheduler
from .withdrawals import WithdrawalGuard

__all__ = [
    "AnalyticsService",
    "BatchedAuthorizationBuilder",
    "DirectSubmitter",
    "EventIngestionPipeline",
    "LendingCore",
    "MarketService",
    "PollingScheduler",
    "PortfolioAggregator",
    "WithdrawalGuard",
]
