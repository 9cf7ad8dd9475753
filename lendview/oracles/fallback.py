"""Static datasets served when market providers are unreachable."""
from __future__ import annotations

from datetime import date, datetime, timedelta

from ..models import (
    ForecastPoint,
    MarketTrend,
    ProtocolTvl,
    Recommendation,
    TokenMarketData,
    YieldForecast,
)

FLAT_WEEK = (1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0)

FALLBACK_TOKENS: tuple[TokenMarketData, ...] = (
    TokenMarketData(
        token="celo",
        symbol="CELO",
        price=0.45,
        market_cap=250_000_000,
        volume_24h=15_000_000,
        price_change_24h=2.5,
        volatility=15.2,
        liquidity=6.0,
        market_cap_rank=120,
        sparkline_7d=(0.42, 0.44, 0.43, 0.45, 0.46, 0.44, 0.45),
    ),
    TokenMarketData(
        token="celo-dollar",
        symbol="CUSD",
        price=1.0,
        market_cap=50_000_000,
        volume_24h=5_000_000,
        price_change_24h=0.1,
        volatility=0.5,
        liquidity=10.0,
        market_cap_rank=500,
        sparkline_7d=FLAT_WEEK,
    ),
    TokenMarketData(
        token="usd-coin",
        symbol="USDC",
        price=1.0,
        market_cap=30_000_000_000,
        volume_24h=2_000_000_000,
        price_change_24h=0.0,
        volatility=0.2,
        liquidity=6.7,
        market_cap_rank=4,
        sparkline_7d=FLAT_WEEK,
    ),
)

FALLBACK_PROTOCOLS: tuple[ProtocolTvl, ...] = (
    ProtocolTvl("Aave", 5_000_000_000, 2.5, 8.3, "Lending"),
    ProtocolTvl("Uniswap", 4_000_000_000, 3.1, 10.5, "DEX"),
    ProtocolTvl("Compound", 2_000_000_000, 1.2, 5.8, "Lending"),
)

FALLBACK_RECOMMENDATIONS: tuple[Recommendation, ...] = (
    Recommendation(
        token="celo",
        symbol="CELO",
        predicted_apy=8.5,
        confidence_score=85,
        risk_level="medium",
        reasoning=(
            "Strong fundamentals with growing DeFi ecosystem adoption and "
            "consistent growth in TVL and user activity."
        ),
        current_price=0.45,
        volatility_index=15.2,
        liquidity_score=6.0,
    ),
    Recommendation(
        token="celo-dollar",
        symbol="CUSD",
        predicted_apy=6.8,
        confidence_score=92,
        risk_level="low",
        reasoning="Stablecoin with consistent yield and low volatility.",
        current_price=1.0,
        volatility_index=0.5,
        liquidity_score=10.0,
    ),
    Recommendation(
        token="usd-coin",
        symbol="USDC",
        predicted_apy=5.2,
        confidence_score=88,
        risk_level="low",
        reasoning="Most liquid stablecoin with established lending markets.",
        current_price=1.0,
        volatility_index=0.2,
        liquidity_score=6.7,
    ),
)

# Forecast horizons in days with the confidence attached to each.
FORECAST_HORIZONS: tuple[tuple[str, int, float], ...] = (
    ("7d", 7, 85.0),
    ("30d", 30, 75.0),
    ("90d", 90, 65.0),
)
_FALLBACK_YIELDS = {"7d": 7.5, "30d": 8.2, "90d": 8.8}


def fallback_recommendations(risk_profile: str) -> list[Recommendation]:
    """Static picks filtered by profile: low keeps low-risk only, high drops them."""
    if risk_profile == "low":
        return [r for r in FALLBACK_RECOMMENDATIONS if r.risk_level == "low"]
    if risk_profile == "high":
        return [r for r in FALLBACK_RECOMMENDATIONS if r.risk_level != "low"]
    return list(FALLBACK_RECOMMENDATIONS)


def fallback_trend(now: datetime) -> MarketTrend:
    return MarketTrend(
        timestamp=now.isoformat(),
        sentiment="neutral",
        volume_trend=5.2,
        volatility_index=12.8,
        overall_score=70.0,
    )


def horizon_date(today: date, days: int) -> str:
    return (today + timedelta(days=days)).isoformat()


def fallback_forecast(token: str, today: date) -> YieldForecast:
    return YieldForecast(
        token=token,
        predictions=tuple(
            ForecastPoint(horizon_date(today, days), _FALLBACK_YIELDS[label], confidence)
            for label, days, confidence in FORECAST_HORIZONS
        ),
    )
