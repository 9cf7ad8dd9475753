"""Unit tests for ABI encoding and decoding helpers."""
from __future__ import annotations

import pytest
from eth_abi import encode
from eth_utils import encode_hex

from lendview.chains.evm.abi import (
    decode_data,
    decode_result,
    encode_call,
    event_topic,
    from_hex_quantity,
    parse_signature,
    to_hex_quantity,
    topic_to_address,
    topic_to_int,
)
from lendview.errors import DecodeError, ReadError
from tests.conftest import ACCOUNT, address_topic

TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


class TestParseSignature:
    def test_args(self) -> None:
        assert parse_signature("borrow(address,address,uint256)") == (
            "borrow",
            ["address", "address", "uint256"],
        )

    def test_no_args(self) -> None:
        assert parse_signature("checkAndLiquidate()") == ("checkAndLiquidate", [])

    def test_malformed(self) -> None:
        with pytest.raises(ValueError, match="Malformed signature"):
            parse_signature("nope")


class TestEncodeCall:
    def test_selector_and_length(self) -> None:
        data = encode_call("transfer(address,uint256)", [ACCOUNT, 1])
        assert data.startswith("0xa9059cbb")
        assert len(data) == 2 + 8 + 2 * 64

    def test_no_args_is_selector_only(self) -> None:
        assert len(encode_call("checkAndLiquidate()")) == 10

    def test_arity_mismatch(self) -> None:
        with pytest.raises(ValueError, match="expects 2 args"):
            encode_call("transfer(address,uint256)", [ACCOUNT])

    def test_unencodable_value(self) -> None:
        with pytest.raises(ValueError, match="Cannot encode"):
            encode_call("transfer(address,uint256)", [ACCOUNT, -1])


class TestDecodeResult:
    def test_uint(self) -> None:
        assert decode_result(["uint256"], encode_hex(encode(["uint256"], [42]))) == (42,)

    def test_empty_is_revert(self) -> None:
        with pytest.raises(ReadError) as exc:
            decode_result(["uint256"], "0x")
        assert exc.value.kind == ReadError.REVERT

    def test_short_data_is_malformed(self) -> None:
        with pytest.raises(ReadError) as exc:
            decode_result(["uint256"], "0x1234")
        assert exc.value.kind == ReadError.MALFORMED


class TestLogHelpers:
    def test_event_topic(self) -> None:
        assert event_topic("Transfer(address,address,uint256)") == TRANSFER_TOPIC

    def test_topic_to_address(self) -> None:
        assert topic_to_address(address_topic(ACCOUNT)) == ACCOUNT

    def test_short_topic_raises(self) -> None:
        with pytest.raises(DecodeError):
            topic_to_address("0x1234")

    def test_topic_to_int(self) -> None:
        assert topic_to_int("0x" + "0" * 62 + "ff") == 255

    def test_decode_data(self) -> None:
        data = encode_hex(encode(["uint256", "uint256"], [5, 6]))
        assert decode_data(["uint256", "uint256"], data) == (5, 6)

    def test_decode_data_short_raises(self) -> None:
        with pytest.raises(DecodeError):
            decode_data(["uint256"], "0x01")


class TestHexQuantities:
    def test_round_values(self) -> None:
        assert to_hex_quantity(16) == "0x10"
        assert from_hex_quantity("0x10") == 16

    def test_from_hex_tolerates_ints_and_none(self) -> None:
        assert from_hex_quantity(None) == 0
        assert from_hex_quantity(7) == 7
        assert from_hex_quantity("12") == 12
