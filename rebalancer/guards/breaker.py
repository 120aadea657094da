"""Domain-wide circuit breaker."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from rebalancer.errors import StateError

logger = logging.getLogger(__name__)


@dataclass
class CircuitBreaker:
    """Admin-toggled switch blocking every mutating entrypoint of one domain."""

    domain: str
    engaged: bool = False

    def engage(self) -> None:
        if self.engaged:
            raise StateError(f"{self.domain}: already paused")
        self.engaged = True
        logger.warning(f"Circuit breaker engaged for {self.domain}")

    def release(self) -> None:
        if not self.engaged:
            raise StateError(f"{self.domain}: not paused")
        self.engaged = False
        logger.info(f"Circuit breaker released for {self.domain}")

    def ensure_released(self) -> None:
        if self.engaged:
            raise StateError(f"{self.domain}: paused")
