"""Tests for the relay wire formats."""

from __future__ import annotations

import pytest
from eth_abi import encode

from conftest import TOKEN_A, TOKEN_B
from rebalancer.errors import MalformedPayload, ValidationError
from rebalancer.events import DomainEvent
from rebalancer.relay import (
    decode_action_data,
    decode_callback_call,
    decode_creation_data,
    decode_envelope,
    decode_update_data,
    encode_action_data,
    encode_callback_call,
    encode_envelope,
    encode_update_data,
    envelope_from_event,
)
from rebalancer.types import ActionData, EventKind
from rebalancer.units import SCALE

PID = b"\x22" * 32


class TestEnvelope:
    def test_layout_is_raw_concatenation(self) -> None:
        topic = EventKind.PRICE_UPDATE.topic
        payload = encode_envelope(topic, PID, b"\xff")

        assert payload[:32] == topic
        assert payload[32:64] == PID
        assert payload[64:] == b"\xff"

    def test_header_only_payload_has_empty_data(self) -> None:
        envelope = decode_envelope(b"\x01" * 32 + PID)
        assert envelope.position_id == PID
        assert envelope.event_data == b""

    @pytest.mark.parametrize("size", [0, 1, 63])
    def test_short_payload_is_malformed(self, size: int) -> None:
        with pytest.raises(MalformedPayload, match="too short"):
            decode_envelope(b"\x00" * size)

    def test_header_fields_must_be_words(self) -> None:
        with pytest.raises(ValidationError):
            encode_envelope(b"\x01" * 31, PID, b"")


class TestEventData:
    def test_update_data_signed_delta(self) -> None:
        data = encode_update_data(2 * SCALE, 3 * SCALE // 2, -SCALE // 4)
        assert decode_update_data(data) == (2 * SCALE, 3 * SCALE // 2, -SCALE // 4)

    def test_truncated_update_data_is_malformed(self) -> None:
        data = encode_update_data(1, 2, 3)
        with pytest.raises(MalformedPayload):
            decode_update_data(data[:40])

    def test_creation_data_checksums_addresses(self, accounts) -> None:
        data = encode(
            ["address", "address", "address", "uint256", "uint256", "uint256"],
            [accounts.owner.address.lower(), TOKEN_A.lower(), TOKEN_B.lower(), 1, 2, 3],
        )
        decoded = decode_creation_data(data)
        assert decoded["owner"] == accounts.owner.address
        assert decoded["asset_a"] == TOKEN_A
        assert decoded["price"] == 3

    def test_envelope_from_price_update_event(self) -> None:
        event = DomainEvent(
            domain="origin",
            name="PriceUpdate",
            position_id=PID,
            data={"old_value": 2 * SCALE, "new_value": 5 * SCALE // 2, "delta": SCALE // 4},
        )
        envelope = decode_envelope(envelope_from_event(event))

        assert EventKind.from_topic(envelope.signature) is EventKind.PRICE_UPDATE
        assert envelope.position_id == PID
        assert decode_update_data(envelope.event_data) == (2 * SCALE, 5 * SCALE // 2, SCALE // 4)

    def test_non_relayable_event_rejected(self) -> None:
        event = DomainEvent(domain="origin", name="PositionClosed", position_id=PID)
        with pytest.raises(ValidationError, match="not relayable"):
            envelope_from_event(event)


class TestCallbackEncoding:
    def test_callback_call_carries_ids_and_action(self) -> None:
        action = ActionData("hedge", TOKEN_A, TOKEN_B, SCALE, SCALE * 95 // 100)
        action_data = encode_action_data(action)
        callback_id = b"\x33" * 32

        decoded = decode_callback_call(encode_callback_call(callback_id, PID, action_data))

        assert decoded == (callback_id, PID, action_data)
        assert decode_action_data(decoded[2]) == action

    def test_wrong_selector_rejected(self) -> None:
        call = encode_callback_call(b"\x33" * 32, PID, b"")
        with pytest.raises(MalformedPayload, match="selector"):
            decode_callback_call(b"\x00\x00\x00\x00" + call[4:])

    def test_unknown_topic_resolves_to_none(self) -> None:
        assert EventKind.from_topic(b"\x99" * 32) is None

    def test_non_utf8_action_type_is_malformed(self) -> None:
        data = encode(
            ["bytes", "address", "address", "uint256", "uint256"],
            [b"\xff\xfe", TOKEN_A, TOKEN_B, SCALE, 0],
        )
        with pytest.raises(MalformedPayload, match="Bad action data"):
            decode_action_data(data)

    @pytest.mark.parametrize("field", ["amount", "min_amount_out"])
    def test_amount_above_uint256_rejected(self, field) -> None:
        values = {"amount": SCALE, "min_amount_out": 0, field: 2**256}
        action = ActionData("rebalance", TOKEN_A, TOKEN_B, values["amount"], values["min_amount_out"])
        with pytest.raises(ValidationError, match="Cannot encode action data"):
            encode_action_data(action)
