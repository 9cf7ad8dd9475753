"""Risk classification and liquidation scanning."""
from __future__ import annotations

from typing import Iterable

from ..models import Position, RiskStatus
from ..protocols.lending.reader import LendingPoolReader

SAFE_THRESHOLD = 1.5
WARNING_THRESHOLD = 1.2


def classify(ratio: float) -> RiskStatus:
    """Health ratio → risk band. Boundaries belong to the higher band."""
    if ratio >= SAFE_THRESHOLD:
        return RiskStatus.SAFE
    if ratio >= WARNING_THRESHOLD:
        return RiskStatus.WARNING
    return RiskStatus.DANGER


def scan_for_liquidatable(positions: Iterable[Position]) -> list[Position]:
    """Positions classified as Danger, in input order.

    Advisory only: the ledger decides actual liquidation eligibility.
    Positions without a health ratio are skipped.
    """
    return [
        p
        for p in positions
        if p.health_ratio is not None and classify(p.health_ratio) is RiskStatus.DANGER
    ]


class RiskEngine:
    def __init__(self, reader: LendingPoolReader) -> None:
        self._reader = reader

    async def health_ratio(self, account: str, asset_id: str) -> float:
        return await self._reader.health_ratio(account, asset_id)

    classify = staticmethod(classify)
    scan_for_liquidatable = staticmethod(scan_for_liquidatable)
