"""Event ingestion — log queries per event kind, decoded and ordered newest first."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from ..cache import LIVE, MISS, TTLCache, make_key
from ..errors import DecodeError
from ..interfaces.ledger import LedgerGateway
from ..models import DomainEvent, RawLog
from ..protocols.lending.events import EVENT_SHAPES, decode_log, shape_for_topic
from ..results import Err, safe_read

logger = logging.getLogger(__name__)


def sort_events(events: list[DomainEvent]) -> list[DomainEvent]:
    """Most recent first: block number descending, then log index descending."""
    return sorted(events, key=lambda e: (e.block_number, e.log_index), reverse=True)


class EventIngestionPipeline:
    """Fetch, decode and order lending pool events.

    A failing log query or a malformed log drops only that query or log.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        contract: str,
        cache: TTLCache | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._gateway = gateway
        self._contract = contract
        self._cache = cache
        self._clock = clock

    async def fetch_events(
        self, from_block: int | str, to_block: int | str = "latest"
    ) -> list[DomainEvent]:
        shapes = list(EVENT_SHAPES.values())
        results = await asyncio.gather(
            *(
                safe_read(
                    self._gateway.get_logs(
                        self._contract, [shape.topic], from_block, to_block
                    ),
                    what=f"{shape.signature} logs",
                )
                for shape in shapes
            )
        )

        logs: dict[tuple[str, int], RawLog] = {}
        for shape, result in zip(shapes, results):
            if isinstance(result, Err):
                logger.warning("Log query for %s failed: %s", shape.signature, result.error)
                continue
            for log in result.value:
                if not log.topics or shape_for_topic(log.topics[0]) is None:
                    logger.warning(
                        "Dropping log %s:%d with unknown signature",
                        log.transaction_hash,
                        log.log_index,
                    )
                    continue
                logs.setdefault((log.transaction_hash.lower(), log.log_index), log)

        timestamps = await self._block_timestamps({log.block_number for log in logs.values()})

        events: list[DomainEvent] = []
        for log in logs.values():
            try:
                events.append(decode_log(log, timestamps[log.block_number]))
            except DecodeError as e:
                logger.debug("Dropping malformed log %s:%d: %s", log.transaction_hash, log.log_index, e)
        return sort_events(events)

    async def _block_timestamps(self, blocks: set[int]) -> dict[int, int]:
        ordered = sorted(blocks)
        results = await asyncio.gather(
            *(safe_read(self._gateway.get_block(n), what=f"block {n}") for n in ordered)
        )
        now = int(self._clock())
        timestamps: dict[int, int] = {}
        for number, result in zip(ordered, results):
            if isinstance(result, Err):
                logger.warning("Block %d lookup failed, using local time: %s", number, result.error)
                timestamps[number] = now
            else:
                timestamps[number] = int(result.value.get("timestamp") or now)
        return timestamps

    async def recent_events(self, lookback_blocks: int = 1000) -> list[DomainEvent]:
        """Events over the last ``lookback_blocks`` blocks, cached."""
        key = make_key(LIVE, "events", lookback_blocks)
        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not MISS:
                return cached
            async with self._cache.lock(key):
                cached = self._cache.get(key)
                if cached is not MISS:
                    return cached
                return await self._load_recent(key, lookback_blocks)
        return await self._load_recent(key, lookback_blocks)

    async def refresh(self, lookback_blocks: int = 1000) -> list[DomainEvent]:
        key = make_key(LIVE, "events", lookback_blocks)
        if self._cache is None:
            return await self._load_recent(key, lookback_blocks)
        async with self._cache.lock(key):
            return await self._load_recent(key, lookback_blocks)

    async def _load_recent(self, key: str, lookback_blocks: int) -> list[DomainEvent]:
        latest = await safe_read(self._gateway.block_number(), what="block number")
        if isinstance(latest, Err):
            logger.warning("Block number lookup failed: %s", latest.error)
            if self._cache is not None:
                previous = self._cache.peek(key)
                if previous is not None:
                    return previous.value
            return []
        events = await self.fetch_events(max(latest.value - lookback_blocks, 0), latest.value)
        if self._cache is not None:
            self._cache.set(key, events)
        return events
