"""Pre-submission checks for operations that take funds out of the pool."""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Sequence

from ..engine.risk import WARNING_THRESHOLD, RiskEngine
from ..errors import ValidationError
from ..models import Operation
from ..protocols.lending.operations import REMOVE_COLLATERAL, WITHDRAW
from ..protocols.lending.reader import LendingPoolReader
from ..validation import validate_withdrawal

logger = logging.getLogger(__name__)


class WithdrawalGuard:
    """Rejects withdrawals the ledger would not cover before anything is sent.

    Deposit withdrawals must fit the account's current deposit. Collateral
    removals must fit the posted collateral, and are refused outright while
    the account's health ratio is below the warning threshold. Amounts for
    the same asset within one batch are added up before checking.

    Read failures propagate; without the figures nothing is known to be safe.
    """

    def __init__(self, reader: LendingPoolReader, risk: RiskEngine) -> None:
        self._reader = reader
        self._risk = risk

    @staticmethod
    def _requested(operations: Sequence[Operation], intent: str) -> dict[str, int]:
        totals: dict[str, int] = defaultdict(int)
        for op in operations:
            if op.intent != intent:
                continue
            try:
                token, raw = op.args
                totals[str(token).lower()] += int(raw)
            except (TypeError, ValueError):
                raise ValidationError(f"Malformed {intent} arguments", field="args") from None
        return dict(totals)

    async def check(self, account: str | None, operations: Sequence[Operation]) -> None:
        withdrawals = self._requested(operations, WITHDRAW)
        removals = self._requested(operations, REMOVE_COLLATERAL)
        if not withdrawals and not removals:
            return
        if not account:
            raise ValidationError("An account is required to check withdrawals", field="account")

        for token, raw in withdrawals.items():
            await self._check_withdraw(account, token, raw)
        for token, raw in removals.items():
            await self._check_removal(account, token, raw)

    async def _check_withdraw(self, account: str, token: str, raw: int) -> None:
        asset = self._reader.registry.get(token)
        deposited = await self._reader.deposit_of(account, asset.id)
        validate_withdrawal(asset, asset.from_units(raw), deposited)

    async def _check_removal(self, account: str, token: str, raw: int) -> None:
        asset = self._reader.registry.get(token)
        collateral, health = await asyncio.gather(
            self._reader.collateral_of(account, asset.id),
            self._risk.health_ratio(account, asset.id),
        )
        validate_withdrawal(asset, asset.from_units(raw), collateral)
        if health < WARNING_THRESHOLD:
            logger.info("Refusing %s collateral removal at health ratio %.2f", asset.symbol, health)
            raise ValidationError(
                f"Cannot withdraw {asset.symbol} collateral: health ratio {health:.2f} "
                f"is below {WARNING_THRESHOLD}",
                field="amount",
            )
