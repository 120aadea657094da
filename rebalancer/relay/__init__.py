"""Relay envelope codec and in-process transport."""

from .codec import (
    ENVELOPE_HEADER_SIZE,
    Envelope,
    decode_action_data,
    decode_callback_call,
    decode_creation_data,
    decode_envelope,
    decode_update_data,
    encode_action_data,
    encode_callback_call,
    encode_creation_data,
    encode_envelope,
    encode_update_data,
    envelope_from_event,
)
from .memory import DeliveryFailure, InMemoryRelay, SubscriptionRegistry

__all__ = [
    "ENVELOPE_HEADER_SIZE",
    "Envelope",
    "decode_action_data",
    "decode_callback_call",
    "decode_creation_data",
    "decode_envelope",
    "decode_update_data",
    "encode_action_data",
    "encode_callback_call",
    "encode_creation_data",
    "encode_envelope",
    "encode_update_data",
    "envelope_from_event",
    "DeliveryFailure",
    "InMemoryRelay",
    "SubscriptionRegistry",
]
