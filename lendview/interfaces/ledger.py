"""Ledger gateway protocol — read/write access to one remote ledger."""
from typing import Any, Protocol, Sequence

from ..models import RawLog, TxId, TxStatus


class LedgerGateway(Protocol):
    """Abstract interface for ledger reads, log queries and submission.

    Read methods raise ``ReadError`` on transport failure, timeout or revert.
    """

    async def get_balance(self, account: str, block: int | str = "latest") -> int: ...

    async def call(
        self,
        contract: str,
        signature: str,
        args: Sequence[Any] = (),
        returns: Sequence[str] = ("uint256",),
        block: int | str = "latest",
    ) -> Any: ...

    async def get_logs(
        self,
        address: str,
        topics: Sequence[str | None],
        from_block: int | str,
        to_block: int | str = "latest",
    ) -> list[RawLog]: ...

    async def get_block(self, number: int | str) -> dict[str, int]: ...

    async def block_number(self) -> int: ...

    async def send_transaction(
        self, to: str, data: str, value: int = 0, sender: str | None = None
    ) -> TxId: ...

    async def wait_for_transaction(
        self, tx_id: str, poll_interval: float = 2.0, timeout: float = 120.0
    ) -> TxStatus: ...
