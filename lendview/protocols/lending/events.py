"""Lending pool event shapes and log decoding — no I/O.

Each of the six event kinds has exactly one on-chain signature. Indexed
arguments arrive as topics, the rest ABI-encoded in ``data``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ...chains.evm.abi import decode_data, event_topic, topic_to_address, topic_to_int
from ...errors import DecodeError
from ...models import DomainEvent, EventKind, RawLog


@dataclass(frozen=True)
class FieldSpec:
    name: str
    abi_type: str
    indexed: bool = False


@dataclass(frozen=True)
class EventShape:
    kind: EventKind
    signature: str
    fields: tuple[FieldSpec, ...]

    @property
    def topic(self) -> str:
        return event_topic(self.signature)

    @property
    def indexed(self) -> tuple[FieldSpec, ...]:
        return tuple(f for f in self.fields if f.indexed)

    @property
    def unindexed(self) -> tuple[FieldSpec, ...]:
        return tuple(f for f in self.fields if not f.indexed)


def _addr(name: str) -> FieldSpec:
    return FieldSpec(name, "address", indexed=True)


def _uint(name: str) -> FieldSpec:
    return FieldSpec(name, "uint256")


EVENT_SHAPES: dict[EventKind, EventShape] = {
    EventKind.DEPOSIT: EventShape(
        EventKind.DEPOSIT,
        "Deposit(address,address,uint256)",
        (_addr("user"), _addr("token"), _uint("amount")),
    ),
    EventKind.WITHDRAW: EventShape(
        EventKind.WITHDRAW,
        "Withdraw(address,address,uint256)",
        (_addr("user"), _addr("token"), _uint("amount")),
    ),
    EventKind.BORROW: EventShape(
        EventKind.BORROW,
        "Borrow(address,address,address,uint256,uint256)",
        (
            _addr("user"),
            _addr("collateralToken"),
            _addr("borrowToken"),
            _uint("amount"),
            _uint("healthFactor"),
        ),
    ),
    EventKind.LIQUIDATION: EventShape(
        EventKind.LIQUIDATION,
        "LiquidationExecuted(address,address,address,uint256)",
        (
            _addr("borrower"),
            _addr("repayToken"),
            _addr("collateralToken"),
            _uint("amount"),
        ),
    ),
    EventKind.RATE_UPDATE: EventShape(
        EventKind.RATE_UPDATE,
        "RateUpdated(address,uint256,uint256)",
        (_addr("token"), _uint("borrowRate"), _uint("supplyRate")),
    ),
    EventKind.ACCRUE: EventShape(
        EventKind.ACCRUE,
        "Accrue(address,address)",
        (_addr("user"), _addr("token")),
    ),
}

_SHAPES_BY_TOPIC: dict[str, EventShape] = {s.topic: s for s in EVENT_SHAPES.values()}


def shape_for_topic(topic: str) -> EventShape | None:
    return _SHAPES_BY_TOPIC.get(topic.lower())


def _decode_topic(spec: FieldSpec, topic: str) -> Any:
    try:
        if spec.abi_type == "address":
            return topic_to_address(topic)
        return topic_to_int(topic)
    except ValueError as e:
        raise DecodeError(f"Bad topic for {spec.name}: {topic}") from e


def decode_log(log: RawLog, timestamp: int) -> DomainEvent:
    """Decode one raw log into a DomainEvent.

    Raises:
        DecodeError: unknown signature topic, or fields that don't match the
            signature's shape.
    """
    if not log.topics:
        raise DecodeError(f"Log {log.transaction_hash}:{log.log_index} has no topics")
    shape = shape_for_topic(log.topics[0])
    if shape is None:
        raise DecodeError(f"Unknown event signature topic {log.topics[0]}")

    indexed = shape.indexed
    if len(log.topics) - 1 != len(indexed):
        raise DecodeError(
            f"{shape.signature} expects {len(indexed)} indexed topics, "
            f"got {len(log.topics) - 1}"
        )

    payload: dict[str, Any] = {}
    for spec, topic in zip(indexed, log.topics[1:]):
        payload[spec.name] = _decode_topic(spec, topic)

    unindexed = shape.unindexed
    if unindexed:
        values = decode_data([f.abi_type for f in unindexed], log.data)
        for spec, value in zip(unindexed, values):
            payload[spec.name] = value

    return DomainEvent(
        kind=shape.kind,
        block_number=log.block_number,
        transaction_id=log.transaction_hash,
        log_index=log.log_index,
        timestamp=timestamp,
        payload=payload,
    )
