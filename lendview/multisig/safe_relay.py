"""Safe transaction relay client — batch submission and status lookup."""
import logging
import ssl
from typing import Any, Sequence

import aiohttp
import certifi

from ..config import MultisigConfig
from ..errors import MultisigUnavailableError
from ..models import AuthorizationId, AuthorizationStatus, PayloadItem, TxId

logger = logging.getLogger(__name__)

_SETTLED = {"SUCCESS"}
_FAILED = {"FAILED", "CANCELLED"}


def map_status(tx_status: str | None) -> AuthorizationStatus:
    """Relay ``txStatus`` → authorization status. Unknown values stay pending."""
    value = (tx_status or "").upper()
    if value in _SETTLED:
        return AuthorizationStatus.SETTLED
    if value in _FAILED:
        return AuthorizationStatus.FAILED
    return AuthorizationStatus.PENDING


class SafeRelayClient:
    """Submit transaction batches to a Safe relay and poll their status."""

    def __init__(self, config: MultisigConfig) -> None:
        self.relay_url = config.relay_url.rstrip("/")
        self.safe_address = config.safe_address
        self.timeout = config.timeout

    async def _request(
        self, method: str, url: str, payload: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        if not self.relay_url:
            raise MultisigUnavailableError("Multisig relay not configured")

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.request(
                    method,
                    url,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status not in (200, 201, 202):
                        raise MultisigUnavailableError(
                            f"Relay returned HTTP {response.status} for {method} {url}"
                        )
                    data = await response.json(content_type=None)
        except MultisigUnavailableError:
            raise
        except Exception as e:
            raise MultisigUnavailableError(f"Relay request failed: {e}") from e

        if not isinstance(data, dict):
            raise MultisigUnavailableError("Malformed relay response")
        return data

    async def submit(self, payload: Sequence[PayloadItem]) -> AuthorizationId:
        if not self.safe_address:
            raise MultisigUnavailableError("Safe address not configured")
        url = f"{self.relay_url}/safes/{self.safe_address}/transactions"
        data = await self._request("POST", url, {"txs": [item.to_dict() for item in payload]})
        safe_tx_hash = data.get("safeTxHash")
        if not safe_tx_hash:
            raise MultisigUnavailableError("Relay response missing safeTxHash")
        logger.info("Batch of %d transactions proposed: %s", len(payload), safe_tx_hash)
        return AuthorizationId(safe_tx_hash)

    async def get_status(
        self, authorization_id: AuthorizationId
    ) -> tuple[AuthorizationStatus, TxId | None]:
        url = f"{self.relay_url}/transactions/{authorization_id}"
        data = await self._request("GET", url)
        status = map_status(data.get("txStatus"))
        tx_hash = data.get("txHash")
        if status is AuthorizationStatus.SETTLED and tx_hash:
            return status, TxId(tx_hash)
        return status, None
