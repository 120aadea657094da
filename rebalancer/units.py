"""Fixed-point and identity helpers."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from web3 import Web3

from rebalancer.errors import ValidationError

SCALE = 10**18
MAX_PRICE_CHANGE = SCALE // 2  # 50%
BPS = 10_000

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def to_fixed(value: Decimal | str | int) -> int:
    """Convert a human value (e.g. Decimal("0.25")) to scale-1e18 fixed point."""
    return int(Decimal(value) * SCALE)


def from_fixed(value: int) -> Decimal:
    return Decimal(value) / Decimal(SCALE)


def relative_delta(old: int, new: int) -> int:
    """Signed relative change of `new` against `old`, at SCALE.

    Truncates toward zero like integer division on-chain.
    """
    if old <= 0:
        raise ValidationError("Reference value must be positive")
    numerator = (new - old) * SCALE
    magnitude = abs(numerator) // old
    return magnitude if numerator >= 0 else -magnitude


def is_zero_identity(address: Optional[str]) -> bool:
    if address is None:
        return True
    return Web3.is_address(address) and Web3.to_checksum_address(address) == ZERO_ADDRESS


def normalize_address(address: Optional[str], *, field: str = "address", allow_zero: bool = False) -> str:
    """Return the checksummed form of `address`.

    Raises ValidationError for malformed input, and for the zero identity
    unless `allow_zero` is set.
    """
    if address is None:
        if allow_zero:
            return ZERO_ADDRESS
        raise ValidationError(f"Invalid {field}: null identity")
    if not Web3.is_address(address):
        raise ValidationError(f"Invalid {field}: {address!r}")
    checksummed = Web3.to_checksum_address(address)
    if not allow_zero and checksummed == ZERO_ADDRESS:
        raise ValidationError(f"Invalid {field}: zero identity")
    return checksummed
