"""DefiLlama protocol TVL client."""
import logging
import ssl

import aiohttp
import certifi

from ..config import MarketConfig
from ..models import ProtocolTvl

logger = logging.getLogger(__name__)


class DefiLlamaClient:
    """Fetch protocol TVL rankings from DefiLlama."""

    def __init__(self, config: MarketConfig) -> None:
        self.base_url = config.defillama_url.rstrip("/")
        self.timeout = config.timeout

    async def fetch_protocols(self, limit: int = 10) -> list[ProtocolTvl]:
        """Largest protocols by TVL. Empty on any failure."""
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    f"{self.base_url}/protocols",
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status != 200:
                        logger.warning("DefiLlama returned HTTP %s", response.status)
                        return []
                    data = await response.json()
        except Exception as e:
            logger.warning("Error fetching DefiLlama protocols: %s", e)
            return []

        if not isinstance(data, list):
            return []

        protocols: list[ProtocolTvl] = []
        for entry in data:
            try:
                protocols.append(
                    ProtocolTvl(
                        name=entry["name"],
                        tvl=float(entry.get("tvl") or 0),
                        change_1d=float(entry.get("change_1d") or 0),
                        change_7d=float(entry.get("change_7d") or 0),
                        category=entry.get("category") or "",
                    )
                )
            except (KeyError, TypeError, ValueError):
                continue
        protocols.sort(key=lambda p: p.tvl, reverse=True)
        return protocols[:limit]
