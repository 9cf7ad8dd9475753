"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import Any, NewType, Union

# Both are 0x-prefixed hex strings on the wire; the distinct names keep a
# multisig authorization id from being mistaken for a settlement tx hash.
AuthorizationId = NewType("AuthorizationId", str)
TxId = NewType("TxId", str)


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssetDescriptor:
    """Supported asset. ``id`` is the token address (zero address for native)."""

    id: str
    symbol: str
    display_name: str
    decimals: int
    is_native: bool = False
    min_amount: float = 1.0
    max_amount: float = 1_000_000.0

    def from_units(self, raw: int) -> float:
        """Raw integer units → decimal-normalized magnitude."""
        return float(Decimal(int(raw)) / (Decimal(10) ** self.decimals))

    def to_units(self, amount: float | str | Decimal) -> int:
        """Decimal-normalized magnitude → raw integer units (truncated)."""
        scaled = Decimal(str(amount)) * (Decimal(10) ** self.decimals)
        return int(scaled.to_integral_value(rounding=ROUND_DOWN))


# ---------------------------------------------------------------------------
# Positions & portfolio
# ---------------------------------------------------------------------------


class RiskStatus(str, Enum):
    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"


class PositionKind(str, Enum):
    LENDING = "lending"
    BORROWING = "borrowing"
    COLLATERAL = "collateral"


@dataclass(frozen=True)
class Position:
    """One account position on one asset, in decimal-normalized units.

    ``accrued`` is interest accrued on top of ``principal``. ``rate`` is a
    percentage (supply APY for lending, borrow APR for borrowing).
    ``health_ratio`` is only set for borrowing and collateral positions.
    """

    kind: PositionKind
    asset_id: str
    symbol: str
    principal: float
    accrued: float = 0.0
    rate: float = 0.0
    health_ratio: float | None = None

    @property
    def total(self) -> float:
        return self.principal + self.accrued


@dataclass(frozen=True)
class PortfolioSummary:
    """Aggregate over one account's positions."""

    account: str
    total_deposits: float = 0.0
    total_borrows: float = 0.0
    total_collateral: float = 0.0
    collateral_ratio: float = 0.0
    health_ratio: float = 0.0
    net_apy: float = 0.0
    positions: tuple[Position, ...] = ()
    failed_assets: tuple[str, ...] = ()
    stale: bool = False

    @classmethod
    def zero(cls, account: str) -> PortfolioSummary:
        return cls(account=account)

    def positions_of(self, kind: PositionKind) -> tuple[Position, ...]:
        return tuple(p for p in self.positions if p.kind is kind)


@dataclass(frozen=True)
class TokenAnalytics:
    asset_id: str
    symbol: str
    total_deposits: float
    total_borrows: float
    utilization: float
    borrow_rate: float
    supply_rate: float


@dataclass(frozen=True)
class ProtocolAnalytics:
    tvl: float = 0.0
    total_borrowed: float = 0.0
    total_supplied: float = 0.0
    utilization: float = 0.0
    average_borrow_rate: float = 0.0
    average_supply_rate: float = 0.0
    tokens: tuple[TokenAnalytics, ...] = ()
    stale: bool = False


# ---------------------------------------------------------------------------
# Ledger events
# ---------------------------------------------------------------------------


class EventKind(str, Enum):
    DEPOSIT = "Deposit"
    WITHDRAW = "Withdraw"
    BORROW = "Borrow"
    LIQUIDATION = "Liquidation"
    RATE_UPDATE = "RateUpdate"
    ACCRUE = "Accrue"


@dataclass(frozen=True)
class RawLog:
    """Undecoded log entry as returned by ``eth_getLogs``."""

    address: str
    topics: tuple[str, ...]
    data: str
    block_number: int
    transaction_hash: str
    log_index: int


@dataclass(frozen=True)
class DomainEvent:
    kind: EventKind
    block_number: int
    transaction_id: str
    log_index: int
    timestamp: int
    payload: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Operation:
    """An intended contract call: ``intent`` is a canonical function signature."""

    target: str
    intent: str
    args: tuple[Any, ...] = ()
    value: int = 0


@dataclass(frozen=True)
class PayloadItem:
    """One encoded transaction in a multisig batch."""

    to: str
    data: str
    value: str = "0"

    def to_dict(self) -> dict[str, str]:
        return {"to": self.to, "data": self.data, "value": self.value}


class AuthorizationStatus(str, Enum):
    PENDING = "pending"
    SETTLED = "settled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not AuthorizationStatus.PENDING


@dataclass(frozen=True)
class BatchedAuthorization:
    authorization_id: AuthorizationId
    payload: tuple[PayloadItem, ...]
    status: AuthorizationStatus = AuthorizationStatus.PENDING
    settlement_tx_id: TxId | None = None


class TxStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class DirectSubmission:
    tx_id: TxId
    status: TxStatus = TxStatus.PENDING


Submission = Union[DirectSubmission, BatchedAuthorization]


class OutcomeStatus(str, Enum):
    SUBMITTED = "submitted"
    NOT_COMPLETED = "not_completed"
    INVALID = "invalid"
    FAILED = "failed"


@dataclass(frozen=True)
class SubmissionOutcome:
    status: OutcomeStatus
    submission: Submission | None = None
    message: str = ""


# ---------------------------------------------------------------------------
# Market data & recommendations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenMarketData:
    token: str
    symbol: str
    price: float
    market_cap: float = 0.0
    volume_24h: float = 0.0
    price_change_24h: float = 0.0
    volatility: float = 0.0
    liquidity: float = 0.0
    market_cap_rank: int = 0
    sparkline_7d: tuple[float, ...] = ()


@dataclass(frozen=True)
class ProtocolTvl:
    name: str
    tvl: float
    change_1d: float = 0.0
    change_7d: float = 0.0
    category: str = ""


@dataclass(frozen=True)
class Recommendation:
    token: str
    symbol: str
    predicted_apy: float
    confidence_score: float
    risk_level: str
    reasoning: str
    current_price: float = 0.0
    volatility_index: float = 0.0
    liquidity_score: float = 0.0


@dataclass(frozen=True)
class MarketTrend:
    timestamp: str
    sentiment: str
    volume_trend: float
    volatility_index: float
    overall_score: float


@dataclass(frozen=True)
class ForecastPoint:
    date: str
    predicted_yield: float
    confidence: float


@dataclass(frozen=True)
class YieldForecast:
    token: str
    predictions: tuple[ForecastPoint, ...]
