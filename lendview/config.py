"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

NATIVE_ADDRESS = "0x0000000000000000000000000000000000000000"

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfig:
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30
    chain_id: int = 44787


@dataclass(frozen=True)
class ContractsConfig:
    lending_pool: str = ""
    collateral_manager: str = ""
    interest_model: str = ""
    vault: str = ""
    debt_tokens: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AssetConfig:
    id: str = ""
    symbol: str = ""
    name: str = ""
    decimals: int = 18
    is_native: bool = False
    min_amount: float = 1.0
    max_amount: float = 1_000_000.0


@dataclass(frozen=True)
class ScalesConfig:
    rate_divisor: float = 100.0
    health_divisor: float = 100.0


@dataclass(frozen=True)
class CacheConfig:
    live_ttl: float = 30.0
    analytics_ttl: float = 60.0
    market_ttl: float = 300.0
    max_entries: int = 1024


@dataclass(frozen=True)
class PollingConfig:
    portfolio: float = 10.0
    analytics: float = 30.0
    events: float = 60.0
    market: float = 60.0
    events_lookback_blocks: int = 1000


@dataclass(frozen=True)
class MarketConfig:
    coingecko_url: str = "https://api.coingecko.com/api/v3"
    defillama_url: str = "https://api.llama.fi"
    openrouter_url: str = "https://openrouter.ai/api/v1/chat/completions"
    openrouter_api_key: str = ""
    model: str = "anthropic/claude-3-haiku"
    timeout: int = 10
    token_ids: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MultisigConfig:
    relay_url: str = ""
    safe_address: str = ""
    timeout: int = 30


@dataclass(frozen=True)
class AppConfig:
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    contracts: ContractsConfig = field(default_factory=ContractsConfig)
    assets: tuple[AssetConfig, ...] = ()
    scales: ScalesConfig = field(default_factory=ScalesConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    market: MarketConfig = field(default_factory=MarketConfig)
    multisig: MultisigConfig = field(default_factory=MultisigConfig)
    accounts: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_ledger(raw: dict[str, Any]) -> LedgerConfig:
    return LedgerConfig(
        rpc_endpoints=tuple(raw.get("rpc_endpoints", [])),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
        chain_id=int(raw.get("chain_id", 44787)),
    )


def _build_contracts(raw: dict[str, Any]) -> ContractsConfig:
    return ContractsConfig(
        lending_pool=raw.get("lending_pool", ""),
        collateral_manager=raw.get("collateral_manager", ""),
        interest_model=raw.get("interest_model", ""),
        vault=raw.get("vault", ""),
        debt_tokens={k.lower(): v for k, v in (raw.get("debt_tokens") or {}).items()},
    )


def _build_assets(raw: list[dict[str, Any]]) -> tuple[AssetConfig, ...]:
    assets: list[AssetConfig] = []
    for a in raw:
        is_native = bool(a.get("is_native", False))
        asset_id = a.get("id") or a.get("address") or (NATIVE_ADDRESS if is_native else "")
        assets.append(
            AssetConfig(
                id=asset_id.lower(),
                symbol=a.get("symbol", ""),
                name=a.get("name", a.get("symbol", "")),
                decimals=int(a.get("decimals", 18)),
                is_native=is_native,
                min_amount=float(a.get("min_amount", 1.0)),
                max_amount=float(a.get("max_amount", 1_000_000.0)),
            )
        )
    return tuple(assets)


def _build_scales(raw: dict[str, Any]) -> ScalesConfig:
    return ScalesConfig(
        rate_divisor=float(raw.get("rate_divisor", 100.0)),
        health_divisor=float(raw.get("health_divisor", 100.0)),
    )


def _build_cache(raw: dict[str, Any]) -> CacheConfig:
    return CacheConfig(
        live_ttl=float(raw.get("live_ttl", 30.0)),
        analytics_ttl=float(raw.get("analytics_ttl", 60.0)),
        market_ttl=float(raw.get("market_ttl", 300.0)),
        max_entries=int(raw.get("max_entries", 1024)),
    )


def _build_polling(raw: dict[str, Any]) -> PollingConfig:
    return PollingConfig(
        portfolio=float(raw.get("portfolio", 10.0)),
        analytics=float(raw.get("analytics", 30.0)),
        events=float(raw.get("events", 60.0)),
        market=float(raw.get("market", 60.0)),
        events_lookback_blocks=int(raw.get("events_lookback_blocks", 1000)),
    )


def _build_market(raw: dict[str, Any]) -> MarketConfig:
    return MarketConfig(
        coingecko_url=raw.get("coingecko_url", MarketConfig.coingecko_url),
        defillama_url=raw.get("defillama_url", MarketConfig.defillama_url),
        openrouter_url=raw.get("openrouter_url", MarketConfig.openrouter_url),
        openrouter_api_key=raw.get("openrouter_api_key", ""),
        model=raw.get("model", MarketConfig.model),
        timeout=int(raw.get("timeout", 10)),
        token_ids={k.lower(): v for k, v in (raw.get("token_ids") or {}).items()},
    )


def _build_multisig(raw: dict[str, Any]) -> MultisigConfig:
    return MultisigConfig(
        relay_url=raw.get("relay_url", ""),
        safe_address=raw.get("safe_address", ""),
        timeout=int(raw.get("timeout", 30)),
    )


def build_config(raw: dict[str, Any]) -> AppConfig:
    """Build and validate an ``AppConfig`` from an already-parsed mapping."""
    raw = _interpolate_env(raw or {})
    cfg = AppConfig(
        ledger=_build_ledger(raw.get("ledger", {})),
        contracts=_build_contracts(raw.get("contracts", {})),
        assets=_build_assets(raw.get("assets", [])),
        scales=_build_scales(raw.get("scales", {})),
        cache=_build_cache(raw.get("cache", {})),
        polling=_build_polling(raw.get("polling", {})),
        market=_build_market(raw.get("market", {})),
        multisig=_build_multisig(raw.get("multisig", {})),
        accounts=tuple(raw.get("accounts", [])),
    )
    _validate(cfg)
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    cfg = build_config(raw)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.ledger.rpc_endpoints:
        raise ValueError("At least one RPC endpoint must be configured")
    if not cfg.assets:
        raise ValueError("At least one asset must be configured")

    seen: set[str] = set()
    for asset in cfg.assets:
        if not asset.id:
            raise ValueError(f"Asset '{asset.symbol}' has no id/address")
        if asset.id in seen:
            raise ValueError(f"Duplicate asset id '{asset.id}'")
        seen.add(asset.id)
        if not 0 <= asset.decimals <= 36:
            raise ValueError(f"Asset '{asset.symbol}' has invalid decimals {asset.decimals}")
        if asset.min_amount > asset.max_amount:
            raise ValueError(
                f"Asset '{asset.symbol}' min_amount exceeds max_amount"
            )

    for asset_id in cfg.contracts.debt_tokens:
        if asset_id not in seen:
            raise ValueError(f"Debt token references unknown asset '{asset_id}'")
    for asset_id in cfg.market.token_ids:
        if asset_id not in seen:
            raise ValueError(f"Market token id references unknown asset '{asset_id}'")
