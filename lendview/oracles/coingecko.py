"""CoinGecko market data client."""
import logging
import ssl
from typing import Any, Sequence

import aiohttp
import certifi

from ..config import MarketConfig
from ..models import TokenMarketData
from .metrics import liquidity, volatility

logger = logging.getLogger(__name__)


def _num(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def parse_market_entry(entry: dict[str, Any]) -> TokenMarketData:
    """One ``coins/markets`` row → TokenMarketData (KeyError if id/symbol missing)."""
    sparkline = tuple(
        float(p) for p in (entry.get("sparkline_in_7d") or {}).get("price", []) if p is not None
    )
    volume = _num(entry.get("total_volume"))
    market_cap = _num(entry.get("market_cap"))
    return TokenMarketData(
        token=entry["id"],
        symbol=str(entry["symbol"]).upper(),
        price=_num(entry.get("current_price")),
        market_cap=market_cap,
        volume_24h=volume,
        price_change_24h=_num(entry.get("price_change_percentage_24h")),
        volatility=volatility(sparkline),
        liquidity=liquidity(volume, market_cap),
        market_cap_rank=int(entry.get("market_cap_rank") or 0),
        sparkline_7d=sparkline,
    )


class CoinGeckoClient:
    """Fetch token market data from CoinGecko."""

    def __init__(self, config: MarketConfig) -> None:
        self.base_url = config.coingecko_url.rstrip("/")
        self.timeout = config.timeout

    async def _get(self, path: str, params: dict[str, Any]) -> Any:
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.get(
                f"{self.base_url}/{path}",
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if response.status != 200:
                    logger.warning("CoinGecko %s returned HTTP %s", path, response.status)
                    return None
                return await response.json()

    async def fetch_markets(self, token_ids: Sequence[str]) -> list[TokenMarketData]:
        """Market rows for ``token_ids``. Empty on any failure."""
        if not token_ids:
            return []
        try:
            data = await self._get(
                "coins/markets",
                {
                    "ids": ",".join(token_ids),
                    "vs_currency": "usd",
                    "order": "market_cap_desc",
                    "per_page": str(max(len(token_ids), 10)),
                    "page": "1",
                    "sparkline": "true",
                    "price_change_percentage": "24h",
                },
            )
        except Exception as e:
            logger.warning("Error fetching CoinGecko markets: %s", e)
            return []

        if not isinstance(data, list):
            return []

        tokens: list[TokenMarketData] = []
        for entry in data:
            try:
                tokens.append(parse_market_entry(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug("Dropping malformed CoinGecko row: %s", e)
        logger.info("Fetched market data for %d tokens", len(tokens))
        return tokens

    async def fetch_price_history(self, token_id: str, days: int = 7) -> list[float]:
        try:
            data = await self._get(
                f"coins/{token_id}/market_chart",
                {
                    "vs_currency": "usd",
                    "days": str(days),
                    "interval": "hourly" if days <= 1 else "daily",
                },
            )
        except Exception as e:
            logger.warning("Error fetching price history for %s: %s", token_id, e)
            return []

        if not isinstance(data, dict):
            return []
        prices: list[float] = []
        for point in data.get("prices", []):
            try:
                prices.append(float(point[1]))
            except (IndexError, TypeError, ValueError):
                continue
        return prices
