"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any, Sequence

import pytest
import yaml

from lendview.config import NATIVE_ADDRESS, AppConfig, build_config
from lendview.models import AuthorizationId, AuthorizationStatus, RawLog, TxId, TxStatus
from lendview.registry import AssetRegistry

# ---------------------------------------------------------------------------
# Addresses
# ---------------------------------------------------------------------------

POOL = "0x" + "11" * 20
COLLATERAL_MANAGER = "0x" + "22" * 20
INTEREST_MODEL = "0x" + "33" * 20
VAULT = "0x" + "44" * 20
CUSD = "0x" + "bb" * 20
USDC = "0x" + "aa" * 20
USDC_DEBT = "0x" + "cc" * 20
CUSD_DEBT = "0x" + "dd" * 20
CELO = NATIVE_ADDRESS
ACCOUNT = "0x" + "ab" * 20
SAFE = "0x" + "ee" * 20


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent(f"""\
    ledger:
      rpc_endpoints: ["https://rpc1.example.com", "https://rpc2.example.com"]
      rpc_timeout: 10
      chain_id: 44787
    contracts:
      lending_pool: "{POOL}"
      collateral_manager: "{COLLATERAL_MANAGER}"
      interest_model: "{INTEREST_MODEL}"
      vault: "{VAULT}"
      debt_tokens:
        "{CUSD}": "{CUSD_DEBT}"
        "{USDC}": "{USDC_DEBT}"
    assets:
      - symbol: CELO
        name: Celo
        decimals: 18
        is_native: true
        min_amount: 0.1
      - id: "{CUSD}"
        symbol: cUSD
        name: Celo Dollar
        decimals: 18
      - id: "{USDC}"
        symbol: USDC
        name: USD Coin
        decimals: 6
    scales:
      rate_divisor: 100
      health_divisor: 100
    polling:
      portfolio: 10
      analytics: 30
      events: 60
      market: 60
      events_lookback_blocks: 500
    market:
      openrouter_api_key: ""
      token_ids:
        "{CELO}": celo
        "{CUSD}": celo-dollar
        "{USDC}": usd-coin
    multisig:
      relay_url: "https://relay.example.com"
      safe_address: "{SAFE}"
    accounts: ["{ACCOUNT}"]
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file


@pytest.fixture()
def sample_app_config() -> AppConfig:
    return build_config(yaml.safe_load(SAMPLE_YAML))


@pytest.fixture()
def registry(sample_app_config: AppConfig) -> AssetRegistry:
    return AssetRegistry.from_config(sample_app_config)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLedger:
    """In-memory ledger gateway.

    Contract reads are answered from ``responses`` keyed by
    ``(contract, signature, args)``; ``args=None`` matches any arguments.
    Unknown reads return ``default``. An exception value is raised.
    """

    def __init__(self, default: Any = 0) -> None:
        self.default = default
        self.responses: dict[tuple[str, str, tuple | None], Any] = {}
        self.logs: dict[str, Any] = {}
        self.blocks: dict[int, Any] = {}
        self.latest_block: Any = 1_000
        self.calls: list[tuple[str, str, tuple]] = []
        self.log_queries: list[tuple[str, tuple, Any, Any]] = []
        self.sent: list[dict[str, Any]] = []
        self.send_result: Any = TxId("0x" + "f1" * 32)
        self.tx_status = TxStatus.CONFIRMED

    def on(self, contract: str, signature: str, args: Sequence[Any] | None = None, value: Any = 0) -> None:
        key = (contract.lower(), signature, None if args is None else tuple(args))
        self.responses[key] = value

    def count(self, signature: str) -> int:
        return sum(1 for _, sig, _ in self.calls if sig == signature)

    @staticmethod
    def _resolve(value: Any) -> Any:
        if isinstance(value, BaseException):
            raise value
        return value

    async def call(self, contract, signature, args=(), returns=("uint256",), block="latest"):
        args = tuple(args)
        self.calls.append((contract, signature, args))
        for key in ((contract.lower(), signature, args), (contract.lower(), signature, None)):
            if key in self.responses:
                return self._resolve(self.responses[key])
        return self._resolve(self.default)

    async def get_logs(self, address, topics, from_block, to_block="latest"):
        self.log_queries.append((address, tuple(topics), from_block, to_block))
        return list(self._resolve(self.logs.get(topics[0], [])))

    async def get_block(self, number):
        value = self.blocks.get(number, {"number": number, "timestamp": 1_700_000_000 + number})
        return self._resolve(value)

    async def block_number(self):
        return self._resolve(self.latest_block)

    async def get_balance(self, account, block="latest"):
        return 0

    async def send_transaction(self, to, data, value=0, sender=None):
        self.sent.append({"to": to, "data": data, "value": value, "from": sender})
        return self._resolve(self.send_result)

    async def wait_for_transaction(self, tx_id, poll_interval=2.0, timeout=120.0):
        return self._resolve(self.tx_status)


class FakeMultisig:
    """Multisig backend answering from a queue of statuses."""

    def __init__(self) -> None:
        self.submitted: list[tuple] = []
        self.submit_error: Exception | None = None
        self.statuses: list[Any] = []

    async def submit(self, payload):
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append(tuple(payload))
        return AuthorizationId("0x" + "5a" * 32)

    async def get_status(self, authorization_id):
        if not self.statuses:
            return AuthorizationStatus.PENDING, None
        value = self.statuses.pop(0)
        if isinstance(value, BaseException):
            raise value
        return value


def raw_log(
    topics: Sequence[str],
    data: str = "0x",
    block_number: int = 10,
    log_index: int = 0,
    tx: str | None = None,
) -> RawLog:
    return RawLog(
        address=POOL,
        topics=tuple(topics),
        data=data,
        block_number=block_number,
        transaction_hash=tx or "0x" + f"{block_number:04x}{log_index:04x}".rjust(64, "0"),
        log_index=log_index,
    )


def address_topic(address: str) -> str:
    return "0x" + "0" * 24 + address[2:].lower()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture()
def multisig() -> FakeMultisig:
    return FakeMultisig()


class FakeMarketData:
    def __init__(self, tokens: Any, history: Sequence[float] = ()) -> None:
        self.tokens = tokens
        self.history = list(history)
        self.calls: list[list[str]] = []
        self.history_calls: list[tuple[str, int]] = []

    async def fetch_markets(self, token_ids):
        self.calls.append(list(token_ids))
        if isinstance(self.tokens, BaseException):
            raise self.tokens
        return list(self.tokens)

    async def fetch_price_history(self, token_id, days=7):
        self.history_calls.append((token_id, days))
        return list(self.history)


class FakeTvl:
    def __init__(self, protocols: Any) -> None:
        self.protocols = protocols

    async def fetch_protocols(self, limit=10):
        return list(self.protocols)


class FakeCompletion:
    def __init__(self, answer: Any) -> None:
        self.answer = answer
        self.prompts: list[str] = []

    async def complete_json(self, prompt):
        self.prompts.append(prompt)
        return self.answer
