"""Shared plumbing for an authority domain."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from threading import RLock
from typing import Callable, Iterator, Optional

from web3 import Web3

from rebalancer.errors import AuthorizationError
from rebalancer.events import EventLog
from rebalancer.guards import CircuitBreaker, ReentrancyGuard, same_identity
from rebalancer.units import normalize_address

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Domain:
    """Base class: admin identity, circuit breaker, reentrancy guard, event log.

    Every mutating entrypoint runs inside `_transaction()`, which serializes
    calls on the domain lock, refuses work while the breaker is engaged and
    holds the entrypoint's reentrancy flag until the call returns or raises.
    Subclasses validate everything before their first mutation so a raised
    error never leaves partial state.
    """

    name = "domain"

    def __init__(self, *, admin: str, clock: Optional[Clock] = None) -> None:
        self.admin = normalize_address(admin, field="admin")
        self._clock: Clock = clock or utc_now
        self._lock = RLock()
        self._guard = ReentrancyGuard()
        self.breaker = CircuitBreaker(domain=self.name)
        self.events = EventLog(self.name, clock=self._clock)
        self._nonce = 0

    @property
    def paused(self) -> bool:
        return self.breaker.engaged

    def now(self) -> datetime:
        return self._clock()

    def _next_nonce(self) -> int:
        self._nonce += 1
        return self._nonce

    def _derive_id(self, abi_types: list[str], values: list[object]) -> bytes:
        """Unique 32-byte id; the trailing nonce is never reused."""
        return bytes(Web3.solidity_keccak([*abi_types, "uint256"], [*values, self._next_nonce()]))

    def _require_admin(self, caller: Optional[str]) -> None:
        if not same_identity(self.admin, caller):
            raise AuthorizationError(f"{self.name}: caller is not the admin")

    @contextmanager
    def _transaction(self, entrypoint: str) -> Iterator[None]:
        with self._lock:
            self.breaker.ensure_released()
            with self._guard.hold(entrypoint):
                yield

    def pause(self, *, caller: str) -> None:
        with self._lock:
            self._require_admin(caller)
            self.breaker.engage()
            self.events.emit("Paused", account=self.admin)

    def unpause(self, *, caller: str) -> None:
        with self._lock:
            self._require_admin(caller)
            self.breaker.release()
            self.events.emit("Unpaused", account=self.admin)
