"""Wire formats carried by the relay.

Envelope (origin -> manager), raw concatenation:

    [32B event signature][32B position id][event data]

Event data is ABI-encoded:

    PriceUpdate / LiquidityUpdate: (uint256 old, uint256 new, int256 delta)
    PositionCreated: (address owner, address assetA, address assetB,
                      uint256 amountA, uint256 amountB, uint256 price)

Callback action data (manager -> destination), ABI-encoded:

    (string actionType, address tokenIn, address tokenOut,
     uint256 amount, uint256 minAmountOut)
"""

from __future__ import annotations

from dataclasses import dataclass

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from web3 import Web3

from rebalancer.errors import MalformedPayload, ValidationError
from rebalancer.events import DomainEvent
from rebalancer.types import ActionData, EventKind

WORD_SIZE = 32
ENVELOPE_HEADER_SIZE = 2 * WORD_SIZE

UPDATE_TYPES = ["uint256", "uint256", "int256"]
CREATION_TYPES = ["address", "address", "address", "uint256", "uint256", "uint256"]
ACTION_TYPES = ["string", "address", "address", "uint256", "uint256"]
CALLBACK_ARG_TYPES = ["bytes32", "bytes32", "bytes", "bytes"]

# eth_abi reports a non-UTF-8 string slot as UnicodeDecodeError, not DecodingError.
DECODE_ERRORS = (DecodingError, UnicodeDecodeError)

PROCESS_CALLBACK_SELECTOR = bytes(Web3.keccak(text="processCallback(bytes32,bytes32,bytes,bytes)"))[:4]


@dataclass(frozen=True)
class Envelope:
    signature: bytes
    position_id: bytes
    event_data: bytes


def encode_envelope(signature: bytes, position_id: bytes, event_data: bytes) -> bytes:
    if len(signature) != WORD_SIZE or len(position_id) != WORD_SIZE:
        raise ValidationError("Envelope signature and position id must be 32 bytes")
    return bytes(signature) + bytes(position_id) + bytes(event_data)


def decode_envelope(payload: bytes) -> Envelope:
    if payload is None or len(payload) < ENVELOPE_HEADER_SIZE:
        size = 0 if payload is None else len(payload)
        raise MalformedPayload(f"Payload too short: {size} < {ENVELOPE_HEADER_SIZE} bytes")
    payload = bytes(payload)
    return Envelope(
        signature=payload[:WORD_SIZE],
        position_id=payload[WORD_SIZE:ENVELOPE_HEADER_SIZE],
        event_data=payload[ENVELOPE_HEADER_SIZE:],
    )


def encode_update_data(old_value: int, new_value: int, delta: int) -> bytes:
    try:
        return encode(UPDATE_TYPES, [old_value, new_value, delta])
    except EncodingError as exc:
        raise ValidationError(f"Cannot encode update data: {exc}") from exc


def decode_update_data(data: bytes) -> tuple[int, int, int]:
    try:
        old_value, new_value, delta = decode(UPDATE_TYPES, data)
    except DECODE_ERRORS as exc:
        raise MalformedPayload(f"Bad update event data: {exc}") from exc
    return int(old_value), int(new_value), int(delta)


def encode_creation_data(
    owner: str,
    asset_a: str,
    asset_b: str,
    amount_a: int,
    amount_b: int,
    price: int,
) -> bytes:
    try:
        return encode(CREATION_TYPES, [owner, asset_a, asset_b, amount_a, amount_b, price])
    except EncodingError as exc:
        raise ValidationError(f"Cannot encode creation data: {exc}") from exc


def decode_creation_data(data: bytes) -> dict[str, object]:
    try:
        owner, asset_a, asset_b, amount_a, amount_b, price = decode(CREATION_TYPES, data)
    except DECODE_ERRORS as exc:
        raise MalformedPayload(f"Bad creation event data: {exc}") from exc
    return {
        "owner": Web3.to_checksum_address(owner),
        "asset_a": Web3.to_checksum_address(asset_a),
        "asset_b": Web3.to_checksum_address(asset_b),
        "amount_a": int(amount_a),
        "amount_b": int(amount_b),
        "price": int(price),
    }


def encode_action_data(action: ActionData) -> bytes:
    try:
        return encode(
            ACTION_TYPES,
            [action.action_type, action.token_in, action.token_out, action.amount, action.min_amount_out],
        )
    except EncodingError as exc:
        raise ValidationError(f"Cannot encode action data: {exc}") from exc


def decode_action_data(data: bytes) -> ActionData:
    try:
        action_type, token_in, token_out, amount, min_amount_out = decode(ACTION_TYPES, data)
    except DECODE_ERRORS as exc:
        raise MalformedPayload(f"Bad action data: {exc}") from exc
    return ActionData(
        action_type=action_type,
        token_in=Web3.to_checksum_address(token_in),
        token_out=Web3.to_checksum_address(token_out),
        amount=int(amount),
        min_amount_out=int(min_amount_out),
    )


def encode_callback_call(callback_id: bytes, position_id: bytes, action_data: bytes) -> bytes:
    """Calldata for processCallback with an empty signature slot."""
    return PROCESS_CALLBACK_SELECTOR + encode(CALLBACK_ARG_TYPES, [callback_id, position_id, action_data, b""])


def decode_callback_call(encoded_call: bytes) -> tuple[bytes, bytes, bytes]:
    if bytes(encoded_call[:4]) != PROCESS_CALLBACK_SELECTOR:
        raise MalformedPayload("Unexpected callback selector")
    try:
        callback_id, position_id, action_data, _ = decode(CALLBACK_ARG_TYPES, bytes(encoded_call[4:]))
    except DECODE_ERRORS as exc:
        raise MalformedPayload(f"Bad callback calldata: {exc}") from exc
    return bytes(callback_id), bytes(position_id), bytes(action_data)


def envelope_from_event(event: DomainEvent) -> bytes:
    """Build the relay payload for an origin registry event."""
    kind = EventKind.from_event_name(event.name)
    if kind is None or event.position_id is None:
        raise ValidationError(f"Event {event.name} is not relayable")

    data = event.data
    if kind is EventKind.POSITION_CREATED:
        event_data = encode_creation_data(
            data["owner"], data["asset_a"], data["asset_b"], data["amount_a"], data["amount_b"], data["price"]
        )
    else:
        event_data = encode_update_data(data["old_value"], data["new_value"], data["delta"])
    return encode_envelope(kind.topic, event.position_id, event_data)
