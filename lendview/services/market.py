"""Market data, recommendations, trends and yield forecasts.

Every answer is cached under the market key class. When a provider is
unreachable or answers with something unusable, a static dataset is served
instead and left uncached so the next call retries the provider.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from ..cache import MARKET, MISS, TTLCache, make_key
from ..config import MarketConfig
from ..errors import ValidationError
from ..interfaces.market import CompletionProvider, MarketDataProvider, TvlProvider
from ..models import (
    ForecastPoint,
    MarketTrend,
    ProtocolTvl,
    Recommendation,
    TokenMarketData,
    YieldForecast,
)
from ..oracles import fallback

logger = logging.getLogger(__name__)

RISK_PROFILES = ("low", "medium", "high")

RISK_PREFERENCES: dict[str, dict[str, Any]] = {
    "low": {"max_volatility": 10, "min_liquidity": 5},
    "medium": {"max_volatility": 20, "min_liquidity": 3},
    "high": {"max_volatility": 50, "min_liquidity": 1},
}

DEFAULT_TOKEN_IDS = ("celo", "celo-dollar", "usd-coin")
FORECAST_HISTORY_DAYS = 30


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_prompt(
    tokens: Sequence[TokenMarketData],
    protocols: Sequence[ProtocolTvl],
    risk_profile: str,
    history: Sequence[float] = (),
) -> str:
    token_lines = "\n".join(
        f"- {t.symbol} ({t.token}): price ${t.price:,.4f}, "
        f"market cap ${t.market_cap:,.0f}, 24h change {t.price_change_24h:.2f}%, "
        f"volatility {t.volatility:.2f}%, liquidity {t.liquidity:.2f}%"
        for t in tokens
    )
    protocol_lines = "\n".join(
        f"- {p.name}: TVL ${p.tvl:,.0f}, 1d {p.change_1d:.2f}%, "
        f"7d {p.change_7d:.2f}%, {p.category}"
        for p in protocols[:5]
    )
    history_block = ""
    if history:
        change = (history[-1] - history[0]) / history[0] * 100 if history[0] else 0.0
        history_block = (
            f"PRICE HISTORY ({len(history)} points): low ${min(history):,.4f}, "
            f"high ${max(history):,.4f}, change {change:.2f}%\n"
            f"\n"
        )
    prefs = RISK_PREFERENCES[risk_profile]
    return (
        f"Analyze this market data for a {risk_profile} risk profile "
        f"(max volatility {prefs['max_volatility']}%, min liquidity {prefs['min_liquidity']}%).\n"
        f"\n"
        f"TOKENS:\n{token_lines}\n"
        f"\n"
        f"DEFI PROTOCOLS:\n{protocol_lines}\n"
        f"\n"
        f"{history_block}"
        "Answer with JSON: {\"recommendations\": [{\"token\": id, \"predictedAPY\": number, "
        "\"confidenceScore\": 0-100, \"riskLevel\": \"low|medium|high\", \"reasoning\": text}], "
        "\"marketTrends\": {\"sentiment\": \"bullish|bearish|neutral\", \"volumeTrend\": number, "
        "\"volatilityIndex\": number, \"overallScore\": number}, "
        "\"yieldForecast\": {\"7d\": number, \"30d\": number, \"90d\": number}}. "
        "Give 3-5 recommendations ranked by risk-adjusted yield."
    )


def parse_recommendations(
    answer: Any, tokens: Sequence[TokenMarketData]
) -> list[Recommendation]:
    """Keep well-formed entries that name a known token; drop the rest."""
    if not isinstance(answer, dict):
        return []
    entries = answer.get("recommendations")
    if not isinstance(entries, list):
        return []

    by_id = {t.token: t for t in tokens}
    recommendations: list[Recommendation] = []
    for entry in entries:
        try:
            token = by_id[entry["token"]]
            risk_level = str(entry.get("riskLevel", "medium")).lower()
            if risk_level not in RISK_PROFILES:
                raise ValueError(f"bad risk level {risk_level!r}")
            recommendations.append(
                Recommendation(
                    token=token.token,
                    symbol=token.symbol,
                    predicted_apy=float(entry["predictedAPY"]),
                    confidence_score=float(entry.get("confidenceScore", 70)),
                    risk_level=risk_level,
                    reasoning=str(entry.get("reasoning", "")),
                    current_price=token.price,
                    volatility_index=token.volatility,
                    liquidity_score=token.liquidity,
                )
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.debug("Dropping malformed recommendation %r: %s", entry, e)
    return recommendations


def parse_trend(
    answer: Any, tokens: Sequence[TokenMarketData], now: datetime
) -> MarketTrend | None:
    if not isinstance(answer, dict) or not isinstance(answer.get("marketTrends"), dict):
        return None
    trends = answer["marketTrends"]
    avg_volatility = sum(t.volatility for t in tokens) / len(tokens) if tokens else 0.0
    avg_change = sum(t.price_change_24h for t in tokens) / len(tokens) if tokens else 0.0
    try:
        return MarketTrend(
            timestamp=now.isoformat(),
            sentiment=str(trends.get("sentiment", "neutral")),
            volume_trend=float(trends.get("volumeTrend", avg_change)),
            volatility_index=float(trends.get("volatilityIndex", avg_volatility)),
            overall_score=float(trends.get("overallScore", 70)),
        )
    except (TypeError, ValueError) as e:
        logger.debug("Malformed market trend %r: %s", trends, e)
        return None


def parse_forecast(answer: Any, token: str, now: datetime) -> YieldForecast | None:
    if not isinstance(answer, dict) or not isinstance(answer.get("yieldForecast"), dict):
        return None
    raw = answer["yieldForecast"]
    today = now.date()
    try:
        points = tuple(
            ForecastPoint(
                fallback.horizon_date(today, days), float(raw[label]), confidence
            )
            for label, days, confidence in fallback.FORECAST_HORIZONS
        )
    except (KeyError, TypeError, ValueError) as e:
        logger.debug("Malformed yield forecast %r: %s", raw, e)
        return None
    return YieldForecast(token=token, predictions=points)


class MarketService:
    def __init__(
        self,
        config: MarketConfig,
        cache: TTLCache,
        market_data: MarketDataProvider,
        tvl: TvlProvider,
        completion: CompletionProvider,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._cache = cache
        self._market_data = market_data
        self._tvl = tvl
        self._completion = completion
        self._now = now

    def token_id_for(self, asset_id: str) -> str:
        return self._config.token_ids.get(asset_id.lower(), asset_id)

    def _token_ids(self) -> list[str]:
        return list(dict.fromkeys(self._config.token_ids.values())) or list(DEFAULT_TOKEN_IDS)

    async def _cached(
        self,
        key: str,
        load: Callable[[], Any],
        fallback_value: Callable[[], Any],
    ) -> Any:
        cached = self._cache.get(key)
        if cached is not MISS:
            return cached
        async with self._cache.lock(key):
            cached = self._cache.get(key)
            if cached is not MISS:
                return cached
            try:
                value = await load()
            except Exception as e:
                logger.warning("Market provider failed for %s: %s", key, e)
                value = None
            if value is None:
                logger.warning("Serving fallback data for %s", key)
                return fallback_value()
            self._cache.set(key, value)
            return value

    async def tokens(self) -> list[TokenMarketData]:
        async def load() -> list[TokenMarketData] | None:
            return await self._market_data.fetch_markets(self._token_ids()) or None

        return await self._cached(
            make_key(MARKET, "tokens"), load, lambda: list(fallback.FALLBACK_TOKENS)
        )

    async def protocols(self) -> list[ProtocolTvl]:
        async def load() -> list[ProtocolTvl] | None:
            return await self._tvl.fetch_protocols() or None

        return await self._cached(
            make_key(MARKET, "protocols"), load, lambda: list(fallback.FALLBACK_PROTOCOLS)
        )

    async def _ask(self, risk_profile: str) -> tuple[Any, list[TokenMarketData]]:
        tokens, protocols = await asyncio.gather(self.tokens(), self.protocols())
        answer = await self._completion.complete_json(
            build_prompt(tokens, protocols, risk_profile)
        )
        return answer, tokens

    async def recommend(self, risk_profile: str = "medium") -> list[Recommendation]:
        risk_profile = risk_profile.lower()
        if risk_profile not in RISK_PROFILES:
            raise ValidationError(f"Unknown risk profile: {risk_profile}", field="risk_profile")

        async def load() -> list[Recommendation] | None:
            answer, tokens = await self._ask(risk_profile)
            return parse_recommendations(answer, tokens) or None

        return await self._cached(
            make_key(MARKET, "recommendations", risk_profile),
            load,
            lambda: fallback.fallback_recommendations(risk_profile),
        )

    async def trends(self) -> MarketTrend:
        async def load() -> MarketTrend | None:
            answer, tokens = await self._ask("medium")
            return parse_trend(answer, tokens, self._now())

        return await self._cached(
            make_key(MARKET, "trends"), load, lambda: fallback.fallback_trend(self._now())
        )

    async def forecast(self, asset_id: str) -> YieldForecast:
        """Forecast from this token's market row and its recent price history."""
        token = self.token_id_for(asset_id)

        async def load() -> YieldForecast | None:
            tokens, protocols, history = await asyncio.gather(
                self.tokens(),
                self.protocols(),
                self._market_data.fetch_price_history(token, FORECAST_HISTORY_DAYS),
            )
            row = next((t for t in tokens if t.token == token), None)
            if row is None:
                logger.info("No market data for %s; forecast unavailable", token)
                return None
            answer = await self._completion.complete_json(
                build_prompt([row], protocols, "medium", history)
            )
            return parse_forecast(answer, token, self._now())

        return await self._cached(
            make_key(MARKET, "forecast", token),
            load,
            lambda: fallback.fallback_forecast(token, self._now().date()),
        )

    async def refresh(self) -> None:
        """Drop market entries and reload the default views."""
        for key in (
            make_key(MARKET, "tokens"),
            make_key(MARKET, "protocols"),
            make_key(MARKET, "recommendations", "medium"),
            make_key(MARKET, "trends"),
        ):
            self._cache.invalidate(key)
        await self.recommend("medium")
        await self.trends()
