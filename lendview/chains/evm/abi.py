"""ABI helpers: calldata encoding, return decoding, topics and hex quantities."""
from __future__ import annotations

from typing import Any, Sequence

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import (
    decode_hex,
    encode_hex,
    event_signature_to_log_topic,
    function_signature_to_4byte_selector,
    is_address,
    to_checksum_address,
)

from ...errors import DecodeError, ReadError


def parse_signature(signature: str) -> tuple[str, list[str]]:
    """Split ``name(type1,type2)`` into its name and argument types."""
    signature = signature.replace(" ", "")
    if "(" not in signature or not signature.endswith(")"):
        raise ValueError(f"Malformed signature: {signature!r}")
    name, _, rest = signature.partition("(")
    inner = rest[:-1]
    return name, [t for t in inner.split(",") if t]


def _normalize_arg(abi_type: str, value: Any) -> Any:
    if abi_type == "address" and isinstance(value, str) and is_address(value.lower()):
        return to_checksum_address(value.lower())
    return value


def encode_call(signature: str, args: Sequence[Any] = ()) -> str:
    """4-byte selector + ABI-encoded arguments, as 0x-hex."""
    _, types = parse_signature(signature)
    if len(types) != len(args):
        raise ValueError(
            f"{signature} expects {len(types)} args, got {len(args)}"
        )
    selector = function_signature_to_4byte_selector(signature.replace(" ", ""))
    values = [_normalize_arg(t, v) for t, v in zip(types, args)]
    try:
        body = encode(types, values) if types else b""
    except EncodingError as e:
        raise ValueError(f"Cannot encode {signature}: {e}") from e
    return encode_hex(selector + body)


def decode_result(returns: Sequence[str], data: str) -> tuple[Any, ...]:
    """Decode an ``eth_call`` return value.

    An empty ``0x`` result means the contract does not exist or reverted
    without data.
    """
    raw = decode_hex(data or "0x")
    if not raw and returns:
        raise ReadError("Empty return data (no contract or reverted)", kind=ReadError.REVERT)
    try:
        return tuple(decode(list(returns), raw))
    except (DecodingError, ValueError) as e:
        raise ReadError(f"Malformed return data: {e}", kind=ReadError.MALFORMED) from e


def decode_data(types: Sequence[str], data: str) -> tuple[Any, ...]:
    """Decode the non-indexed part of a log."""
    try:
        return tuple(decode(list(types), decode_hex(data or "0x")))
    except (DecodingError, ValueError) as e:
        raise DecodeError(f"Cannot decode log data as {list(types)}: {e}") from e


def event_topic(signature: str) -> str:
    return encode_hex(event_signature_to_log_topic(signature.replace(" ", "")))


def topic_to_address(topic: str) -> str:
    """Indexed address topic (32 bytes, left-padded) → lowercase address."""
    raw = decode_hex(topic)
    if len(raw) != 32:
        raise DecodeError(f"Topic is not 32 bytes: {topic}")
    return "0x" + raw[-20:].hex()


def topic_to_int(topic: str) -> int:
    return int(topic, 16)


def to_hex_quantity(value: int) -> str:
    return hex(int(value))


def from_hex_quantity(value: str | int | None) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16) if value.startswith("0x") else int(value)
