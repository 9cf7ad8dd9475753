"""Operation builders for lending pool writes — no I/O.

Amounts come in decimal-normalized and are converted to raw units here.
"""
from __future__ import annotations

from ...config import ContractsConfig
from ...errors import ValidationError
from ...models import Operation
from ...registry import AssetRegistry
from ...validation import validate_amount

WITHDRAW = "withdraw(address,uint256)"
REMOVE_COLLATERAL = "removeCollateral(address,uint256)"


class OperationFactory:
    """Build ``Operation`` values for user and admin intents."""

    def __init__(self, registry: AssetRegistry, contracts: ContractsConfig) -> None:
        self._registry = registry
        self._contracts = contracts

    def _raw(self, asset_id: str, amount: float, validate: bool = True) -> tuple[str, int]:
        asset = self._registry.get(asset_id)
        if validate:
            validate_amount(asset, amount)
        return asset.id, asset.to_units(amount)

    def deposit(self, asset_id: str, amount: float) -> Operation:
        asset = self._registry.get(asset_id)
        token, raw = self._raw(asset_id, amount)
        if asset.is_native:
            return Operation(
                self._contracts.vault, "deposit(address,uint256)", (token, raw), value=raw
            )
        return Operation(self._contracts.lending_pool, "deposit(address,uint256)", (token, raw))

    def withdraw(self, asset_id: str, amount: float) -> Operation:
        asset = self._registry.get(asset_id)
        token, raw = self._raw(asset_id, amount, validate=False)
        if raw <= 0:
            raise ValidationError("Amount must be greater than zero", field="amount")
        target = self._contracts.vault if asset.is_native else self._contracts.lending_pool
        return Operation(target, WITHDRAW, (token, raw))

    def borrow(self, collateral_asset_id: str, borrow_asset_id: str, amount: float) -> Operation:
        collateral = self._registry.get(collateral_asset_id)
        token, raw = self._raw(borrow_asset_id, amount)
        return Operation(
            self._contracts.lending_pool,
            "borrow(address,address,uint256)",
            (collateral.id, token, raw),
        )

    def repay(self, asset_id: str, amount: float) -> Operation:
        token, raw = self._raw(asset_id, amount, validate=False)
        if raw <= 0:
            raise ValidationError("Amount must be greater than zero", field="amount")
        return Operation(self._contracts.lending_pool, "repay(address,uint256)", (token, raw))

    def add_collateral(self, asset_id: str, amount: float) -> Operation:
        asset = self._registry.get(asset_id)
        token, raw = self._raw(asset_id, amount)
        return Operation(
            self._contracts.collateral_manager,
            "addCollateral(address,uint256)",
            (token, raw),
            value=raw if asset.is_native else 0,
        )

    def remove_collateral(self, asset_id: str, amount: float) -> Operation:
        token, raw = self._raw(asset_id, amount, validate=False)
        if raw <= 0:
            raise ValidationError("Amount must be greater than zero", field="amount")
        return Operation(self._contracts.collateral_manager, REMOVE_COLLATERAL, (token, raw))

    def approve(self, asset_id: str, amount: float, spender: str | None = None) -> Operation:
        asset = self._registry.get(asset_id)
        if asset.is_native:
            raise ValidationError("Cannot approve native token", field="asset")
        _, raw = self._raw(asset_id, amount, validate=False)
        return Operation(
            asset.id,
            "approve(address,uint256)",
            (spender or self._contracts.lending_pool, raw),
        )

    def liquidate(self, borrower: str, collateral_asset_id: str, borrow_asset_id: str) -> Operation:
        return Operation(
            self._contracts.lending_pool,
            "liquidatePosition(address,address,address)",
            (
                borrower,
                self._registry.get(collateral_asset_id).id,
                self._registry.get(borrow_asset_id).id,
            ),
        )

    # Admin intents

    def update_rates(self, asset_id: str) -> Operation:
        return Operation(
            self._contracts.lending_pool, "updateRates(address)", (self._registry.get(asset_id).id,)
        )

    def accrue_interest(self, account: str, asset_id: str) -> Operation:
        return Operation(
            self._contracts.lending_pool,
            "accrueInterest(address,address)",
            (account, self._registry.get(asset_id).id),
        )

    def check_and_liquidate(self) -> Operation:
        return Operation(self._contracts.lending_pool, "checkAndLiquidate()")
