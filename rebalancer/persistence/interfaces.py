from __future__ import annotations

from typing import Optional, Protocol, Sequence

from rebalancer.persistence.records import (
    PaymentRecord,
    PositionEventRecord,
    PositionRecord,
    ReactiveLogRecord,
    ReactiveLogStatus,
)


class AnalyticsStore(Protocol):
    """One-way sink for pipeline history. Nothing here feeds back into core state."""

    def record_position(self, *, position: PositionRecord) -> None:
        """Insert or update a monitored position, keyed by position_id."""

    def get_position(self, *, position_id: str) -> Optional[PositionRecord]:
        """Fetch a single position record."""

    def list_positions(self, *, owner: str | None = None) -> Sequence[PositionRecord]:
        """List positions, optionally for one owner."""

    def record_position_event(self, *, event: PositionEventRecord) -> int:
        """Persist a position event and return its id."""

    def list_position_events(self, *, position_id: str) -> Sequence[PositionEventRecord]:
        """Events for one position, oldest first."""

    def record_reactive_log(self, *, log: ReactiveLogRecord) -> int:
        """Persist a reactive log entry and return its id."""

    def update_reactive_log(
        self,
        *,
        log_id: int,
        status: ReactiveLogStatus,
        dest_tx_hash: str | None = None,
        gas_used: int | None = None,
    ) -> None:
        """Move a reactive log to its final status. Raises KeyError for unknown ids."""

    def list_reactive_logs(self, *, position_id: str | None = None) -> Sequence[ReactiveLogRecord]:
        """Reactive logs, optionally for one position, oldest first."""

    def record_payment(self, *, payment: PaymentRecord) -> int:
        """Persist a payment and return its id."""

    def list_payments(self, *, owner: str | None = None) -> Sequence[PaymentRecord]:
        """Payments, optionally for one owner, oldest first."""
