"""Market-data provider protocols."""
from typing import Any, Protocol, Sequence

from ..models import ProtocolTvl, TokenMarketData


class MarketDataProvider(Protocol):
    """Token prices, market caps and price history."""

    async def fetch_markets(self, token_ids: Sequence[str]) -> list[TokenMarketData]: ...

    async def fetch_price_history(self, token_id: str, days: int = 7) -> list[float]: ...


class TvlProvider(Protocol):
    async def fetch_protocols(self, limit: int = 10) -> list[ProtocolTvl]: ...


class CompletionProvider(Protocol):
    """Natural-language model answering with a JSON document."""

    async def complete_json(self, prompt: str) -> Any: ...
