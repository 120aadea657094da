"""Per-entrypoint reentrancy guard."""

from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Iterator

from rebalancer.errors import StateError


class ReentrancyGuard:
    """Mutual-exclusion flags keyed by entrypoint name.

    A flag is held for the duration of one call and released on every exit
    path, including exceptions.
    """

    def __init__(self) -> None:
        self._held: set[str] = set()
        self._lock = Lock()

    def is_held(self, entrypoint: str) -> bool:
        with self._lock:
            return entrypoint in self._held

    @contextmanager
    def hold(self, entrypoint: str) -> Iterator[None]:
        with self._lock:
            if entrypoint in self._held:
                raise StateError(f"Reentrant call into {entrypoint}")
            self._held.add(entrypoint)
        try:
            yield
        finally:
            with self._lock:
                self._held.discard(entrypoint)
