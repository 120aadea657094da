"""Content-addressed, insert-once processed markers.

The ledger is the only idempotency mechanism in the pipeline. Keys are
Keccak-256 hashes of an identity tuple; a key once marked is permanent.
There is no removal API.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from web3 import Web3

from rebalancer.errors import StateError, ValidationError


def event_key(signature: bytes, position_id: bytes, event_data: bytes) -> bytes:
    """Dedup key for a relayed origin event."""
    return bytes(Web3.solidity_keccak(["bytes32", "bytes32", "bytes"], [signature, position_id, event_data]))


def callback_key(callback_id: bytes) -> bytes:
    """Dedup key for a callback delivery (the callback id itself)."""
    if len(callback_id) != 32:
        raise ValidationError("Callback id must be 32 bytes")
    return bytes(callback_id)


class DedupLedger:
    """Append-only set of processed keys."""

    def __init__(self, *, name: str, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.name = name
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._processed: dict[bytes, datetime] = {}

    def __contains__(self, key: bytes) -> bool:
        return bytes(key) in self._processed

    def __len__(self) -> int:
        return len(self._processed)

    def __iter__(self) -> Iterator[bytes]:
        return iter(list(self._processed))

    def is_processed(self, key: bytes) -> bool:
        return key in self

    def processed_at(self, key: bytes) -> Optional[datetime]:
        return self._processed.get(bytes(key))

    def mark(self, key: bytes) -> None:
        """Insert `key`. Raises StateError if it is already present."""
        key = bytes(key)
        if key in self._processed:
            raise StateError(f"{self.name}: key already processed 0x{key.hex()}")
        self._processed[key] = self._clock()
