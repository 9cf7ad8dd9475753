"""EVM JSON-RPC client with fallback support."""
import asyncio
import logging
import ssl
from typing import Any, Sequence

import aiohttp
import certifi

from ...config import LedgerConfig
from ...errors import ReadError, UserRejectedError, is_user_rejection
from ...models import RawLog, TxId, TxStatus
from .abi import decode_result, encode_call, from_hex_quantity, to_hex_quantity

logger = logging.getLogger(__name__)

# Failures that justify trying the next endpoint. A JSON-RPC error payload
# is an answer, not a transport failure, and is raised immediately.
_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError)

_REVERT_CODES = (3, -32015)


def _block_tag(block: int | str) -> str:
    return to_hex_quantity(block) if isinstance(block, int) else block


class EvmClient:
    """EVM ledger RPC client with automatic endpoint fallback."""

    def __init__(self, config: LedgerConfig) -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.chain_id = config.chain_id
        self.current_rpc_index = 0

    async def rpc_call(self, method: str, params: list[Any]) -> Any:
        """Make RPC call with fallback to alternative endpoints."""
        if not self.endpoints:
            raise ReadError("No RPC endpoints configured")

        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.post(
                        rpc_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        result = await response.json(content_type=None)
            except _TRANSPORT_ERRORS as e:
                last_error = e
                logger.warning("RPC endpoint %s failed on %s: %s", rpc_url, method, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

            if rpc_index != self.current_rpc_index:
                logger.info("Switched to RPC endpoint: %s", rpc_url)
                self.current_rpc_index = rpc_index

            if not isinstance(result, dict):
                raise ReadError(f"Malformed RPC response to {method}", kind=ReadError.MALFORMED)
            if "error" in result:
                raise self._error_from_payload(method, result["error"])
            return result.get("result")

        kind = (
            ReadError.TIMEOUT
            if isinstance(last_error, asyncio.TimeoutError)
            else ReadError.TRANSPORT
        )
        raise ReadError(f"All RPC endpoints failed. Last error: {last_error}", kind=kind)

    @staticmethod
    def _error_from_payload(method: str, error: Any) -> Exception:
        if not isinstance(error, dict):
            return ReadError(f"RPC Error on {method}: {error}")
        code = error.get("code")
        message = str(error.get("message", ""))
        if code == 4001 or is_user_rejection(message):
            return UserRejectedError(message or "User rejected the request")
        if code in _REVERT_CODES or "revert" in message.lower():
            return ReadError(f"Call reverted: {message}", kind=ReadError.REVERT)
        return ReadError(f"RPC Error on {method}: {error}")

    # -- Reads ---------------------------------------------------------------

    async def block_number(self) -> int:
        return from_hex_quantity(await self.rpc_call("eth_blockNumber", []))

    async def get_balance(self, account: str, block: int | str = "latest") -> int:
        """Native balance in raw units."""
        result = await self.rpc_call("eth_getBalance", [account, _block_tag(block)])
        return from_hex_quantity(result)

    async def call(
        self,
        contract: str,
        signature: str,
        args: Sequence[Any] = (),
        returns: Sequence[str] = ("uint256",),
        block: int | str = "latest",
    ) -> Any:
        """ABI-encoded ``eth_call``. A single return value is unwrapped."""
        if not contract:
            raise ReadError(f"No contract address for {signature}", kind=ReadError.REVERT)
        data = encode_call(signature, args)
        raw = await self.rpc_call(
            "eth_call", [{"to": contract, "data": data}, _block_tag(block)]
        )
        if raw is not None and not isinstance(raw, str):
            raise ReadError(f"Malformed eth_call result for {signature}", kind=ReadError.MALFORMED)
        values = decode_result(returns, raw or "0x")
        return values[0] if len(values) == 1 else values

    async def get_logs(
        self,
        address: str,
        topics: Sequence[str | None],
        from_block: int | str,
        to_block: int | str = "latest",
    ) -> list[RawLog]:
        result = await self.rpc_call(
            "eth_getLogs",
            [
                {
                    "address": address,
                    "topics": list(topics),
                    "fromBlock": _block_tag(from_block),
                    "toBlock": _block_tag(to_block),
                }
            ],
        )
        if not isinstance(result, list):
            raise ReadError("Malformed eth_getLogs result", kind=ReadError.MALFORMED)

        logs: list[RawLog] = []
        for entry in result:
            try:
                logs.append(
                    RawLog(
                        address=str(entry["address"]).lower(),
                        topics=tuple(str(t).lower() for t in entry.get("topics", [])),
                        data=entry.get("data", "0x"),
                        block_number=from_hex_quantity(entry["blockNumber"]),
                        transaction_hash=entry["transactionHash"],
                        log_index=from_hex_quantity(entry.get("logIndex", 0)),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.debug("Skipping malformed log entry %r: %s", entry, e)
        return logs

    async def get_block(self, number: int | str) -> dict[str, int]:
        result = await self.rpc_call("eth_getBlockByNumber", [_block_tag(number), False])
        if not isinstance(result, dict):
            raise ReadError(f"Block {number} not found", kind=ReadError.MALFORMED)
        return {
            "number": from_hex_quantity(result.get("number")),
            "timestamp": from_hex_quantity(result.get("timestamp")),
        }

    async def get_transaction_receipt(self, tx_id: str) -> dict[str, Any] | None:
        return await self.rpc_call("eth_getTransactionReceipt", [tx_id])

    # -- Writes --------------------------------------------------------------

    async def send_transaction(
        self, to: str, data: str, value: int = 0, sender: str | None = None
    ) -> TxId:
        """Submit through the node's account management (``eth_sendTransaction``)."""
        tx: dict[str, Any] = {"to": to, "data": data, "value": to_hex_quantity(value)}
        if sender:
            tx["from"] = sender
        result = await self.rpc_call("eth_sendTransaction", [tx])
        if not isinstance(result, str):
            raise ReadError("Malformed eth_sendTransaction result", kind=ReadError.MALFORMED)
        return TxId(result)

    async def wait_for_transaction(
        self, tx_id: str, poll_interval: float = 2.0, timeout: float = 120.0
    ) -> TxStatus:
        """Poll for a receipt. Returns PENDING if none arrived within ``timeout``."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            receipt = await self.get_transaction_receipt(tx_id)
            if receipt:
                status = from_hex_quantity(receipt.get("status", "0x1"))
                return TxStatus.CONFIRMED if status == 1 else TxStatus.FAILED
            if loop.time() >= deadline:
                return TxStatus.PENDING
            await asyncio.sleep(poll_interval)
