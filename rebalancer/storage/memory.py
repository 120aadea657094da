from __future__ import annotations

from dataclasses import replace
from threading import Lock
from typing import Optional, Sequence

from rebalancer.persistence.interfaces import AnalyticsStore
from rebalancer.persistence.records import (
    PaymentRecord,
    PositionEventRecord,
    PositionRecord,
    ReactiveLogRecord,
    ReactiveLogStatus,
)


class InMemoryAnalyticsStore(AnalyticsStore):
    """Process-local analytics store for tests, demos and the default API."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._positions: dict[str, PositionRecord] = {}
        self._events: list[PositionEventRecord] = []
        self._logs: dict[int, ReactiveLogRecord] = {}
        self._payments: list[PaymentRecord] = []

    def record_position(self, *, position: PositionRecord) -> None:
        with self._lock:
            existing = self._positions.get(position.position_id)
            if existing is not None:
                position = replace(position, created_at=existing.created_at)
            self._positions[position.position_id] = position

    def get_position(self, *, position_id: str) -> Optional[PositionRecord]:
        return self._positions.get(position_id)

    def list_positions(self, *, owner: str | None = None) -> Sequence[PositionRecord]:
        return [p for p in self._positions.values() if owner is None or p.owner == owner]

    def record_position_event(self, *, event: PositionEventRecord) -> int:
        with self._lock:
            event_id = len(self._events) + 1
            self._events.append(replace(event, id=event_id))
            return event_id

    def list_position_events(self, *, position_id: str) -> Sequence[PositionEventRecord]:
        return [e for e in self._events if e.position_id == position_id]

    def record_reactive_log(self, *, log: ReactiveLogRecord) -> int:
        with self._lock:
            log_id = len(self._logs) + 1
            self._logs[log_id] = replace(log, id=log_id)
            return log_id

    def update_reactive_log(
        self,
        *,
        log_id: int,
        status: ReactiveLogStatus,
        dest_tx_hash: str | None = None,
        gas_used: int | None = None,
    ) -> None:
        with self._lock:
            log = self._logs[log_id]
            self._logs[log_id] = replace(
                log,
                status=status,
                dest_tx_hash=dest_tx_hash if dest_tx_hash is not None else log.dest_tx_hash,
                gas_used=gas_used if gas_used is not None else log.gas_used,
            )

    def list_reactive_logs(self, *, position_id: str | None = None) -> Sequence[ReactiveLogRecord]:
        return [log for log in self._logs.values() if position_id is None or log.position_id == position_id]

    def record_payment(self, *, payment: PaymentRecord) -> int:
        with self._lock:
            payment_id = len(self._payments) + 1
            self._payments.append(replace(payment, id=payment_id))
            return payment_id

    def list_payments(self, *, owner: str | None = None) -> Sequence[PaymentRecord]:
        return [p for p in self._payments if owner is None or p.owner == owner]
