"""Error taxonomy shared by all domains.

Every error is a synchronous rejection of the whole call. Nothing is
committed when one of these is raised.
"""

from __future__ import annotations


class RebalancerError(Exception):
    """Base exception for core rejections."""


class ValidationError(RebalancerError):
    """Malformed or out-of-range input."""


class MalformedPayload(ValidationError):
    """Relay payload could not be decoded."""


class AuthorizationError(RebalancerError):
    """Caller or signature is not authorized for the operation."""


class StateError(RebalancerError):
    """Operation is not allowed in the current state."""


class EventAlreadyProcessed(StateError):
    """Relay event or callback id was already consumed."""

    def __init__(self, dedup_key: bytes):
        super().__init__(f"Event already processed: 0x{dedup_key.hex()}")
        self.dedup_key = dedup_key


class SlippageError(RebalancerError):
    """Computed output fell below the caller's floor."""

    def __init__(self, amount_out: int, min_amount_out: int):
        super().__init__(f"Slippage too high: {amount_out} < {min_amount_out}")
        self.amount_out = amount_out
        self.min_amount_out = min_amount_out
