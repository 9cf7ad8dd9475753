"""Lending pool reader — per (account, asset) ledger reads, decimal-normalized."""
from __future__ import annotations

import asyncio
import logging

from ...config import ContractsConfig, ScalesConfig
from ...interfaces.ledger import LedgerGateway
from ...models import AssetDescriptor
from ...registry import AssetRegistry
from . import parser

logger = logging.getLogger(__name__)

# Contract entry points.
GET_USER_DEPOSIT = "getUserDeposit(address,address)"
TOTAL_DEPOSITS = "totalDeposits(address)"
TOTAL_BORROWS = "totalBorrows(address)"
GET_SUPPLY_RATE = "getSupplyRate(address,uint256,uint256)"
GET_BORROW_RATE = "getBorrowRate(address,uint256,uint256,uint256,uint256,uint256)"
GET_ACCRUED_DEBT = "getAccruedDebt(address)"
BALANCE_OF = "balanceOf(address)"
GET_USER_COLLATERAL = "getUserCollateral(address,address)"
GET_HEALTH_FACTOR = "getHealthFactor(address,address)"
VAULT_USER_SHARES = "userTokenSharesBalance(address,address)"
VAULT_TOTAL_SHARES = "totalTokenShares(address)"
VAULT_TOTAL_ASSETS = "totalTokenAssets(address)"
VAULT_GET_APY = "getAPY(address)"


class LendingPoolReader:
    """Read lending positions and market state through a ledger gateway.

    Every amount returned is normalized by the asset's decimals. Rates are
    percentages and health factors unitless ratios; the raw fixed-point
    scales are applied here and nowhere else.

    Read failures propagate as ``ReadError``; callers decide the fallback.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        registry: AssetRegistry,
        contracts: ContractsConfig,
        scales: ScalesConfig,
    ) -> None:
        self._gateway = gateway
        self._registry = registry
        self._contracts = contracts
        self._scales = scales

    @property
    def registry(self) -> AssetRegistry:
        return self._registry

    def _asset(self, asset_id: str) -> AssetDescriptor:
        return self._registry.get(asset_id)

    # -- Account positions ---------------------------------------------------

    async def deposit_of(self, account: str, asset_id: str) -> float:
        asset = self._asset(asset_id)
        if asset.is_native:
            return asset.from_units(await self._vault_assets_of(account, asset))
        raw = await self._gateway.call(
            self._contracts.lending_pool, GET_USER_DEPOSIT, [account, asset.id]
        )
        return asset.from_units(raw)

    async def _vault_assets_of(self, account: str, asset: AssetDescriptor) -> int:
        vault = self._contracts.vault
        shares, total_shares, total_assets = await asyncio.gather(
            self._gateway.call(vault, VAULT_USER_SHARES, [account, asset.id]),
            self._gateway.call(vault, VAULT_TOTAL_SHARES, [asset.id]),
            self._gateway.call(vault, VAULT_TOTAL_ASSETS, [asset.id]),
        )
        return parser.shares_to_assets(shares, total_shares, total_assets)

    def debt_token_for(self, asset_id: str) -> str | None:
        """Debt token tracking borrows of ``asset_id``, if the asset can be borrowed."""
        return self._contracts.debt_tokens.get(self._asset(asset_id).id)

    async def debt_of(self, account: str, asset_id: str) -> float:
        """Principal plus accrued interest. 0 for assets without a debt token."""
        asset = self._asset(asset_id)
        debt_token = self.debt_token_for(asset.id)
        if not debt_token:
            return 0.0
        raw = await self._gateway.call(debt_token, GET_ACCRUED_DEBT, [account])
        return asset.from_units(raw)

    async def debt_principal_of(self, account: str, asset_id: str) -> float:
        asset = self._asset(asset_id)
        debt_token = self.debt_token_for(asset.id)
        if not debt_token:
            return 0.0
        raw = await self._gateway.call(debt_token, BALANCE_OF, [account])
        return asset.from_units(raw)

    async def collateral_of(self, account: str, asset_id: str) -> float:
        asset = self._asset(asset_id)
        raw = await self._gateway.call(
            self._contracts.collateral_manager, GET_USER_COLLATERAL, [account, asset.id]
        )
        return asset.from_units(raw)

    async def health_ratio(self, account: str, asset_id: str) -> float:
        asset = self._asset(asset_id)
        raw = await self._gateway.call(
            self._contracts.collateral_manager, GET_HEALTH_FACTOR, [account, asset.id]
        )
        return parser.scale_health(raw, self._scales.health_divisor)

    # -- Market state --------------------------------------------------------

    async def raw_market_totals(self, asset_id: str) -> tuple[int, int]:
        asset = self._asset(asset_id)
        if asset.is_native:
            # The vault holds native deposits and does not lend them out.
            total = await self._gateway.call(
                self._contracts.vault, VAULT_TOTAL_ASSETS, [asset.id]
            )
            return int(total), 0
        deposits, borrows = await asyncio.gather(
            self._gateway.call(self._contracts.lending_pool, TOTAL_DEPOSITS, [asset.id]),
            self._gateway.call(self._contracts.lending_pool, TOTAL_BORROWS, [asset.id]),
        )
        return int(deposits), int(borrows)

    async def supply_rate(
        self,
        asset_id: str,
        raw_deposits: int | None = None,
        raw_borrows: int | None = None,
    ) -> float:
        asset = self._asset(asset_id)
        if asset.is_native:
            raw = await self._gateway.call(self._contracts.vault, VAULT_GET_APY, [asset.id])
            return parser.scale_rate(raw, self._scales.rate_divisor)
        if raw_deposits is None or raw_borrows is None:
            raw_deposits, raw_borrows = await self.raw_market_totals(asset_id)
        raw = await self._gateway.call(
            self._contracts.lending_pool,
            GET_SUPPLY_RATE,
            [asset.id, raw_deposits, raw_borrows],
        )
        return parser.scale_rate(raw, self._scales.rate_divisor)

    async def borrow_rate(
        self,
        asset_id: str,
        raw_deposits: int | None = None,
        raw_borrows: int | None = None,
        volatility: int = 0,
        liquidity: int = 0,
        price_deviation: int = 0,
    ) -> float:
        asset = self._asset(asset_id)
        if asset.is_native:
            return 0.0
        if raw_deposits is None or raw_borrows is None:
            raw_deposits, raw_borrows = await self.raw_market_totals(asset_id)
        raw = await self._gateway.call(
            self._contracts.interest_model,
            GET_BORROW_RATE,
            [asset.id, raw_deposits, raw_borrows, volatility, liquidity, price_deviation],
        )
        return parser.scale_rate(raw, self._scales.rate_divisor)
