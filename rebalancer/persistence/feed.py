"""One-way feed from domain event logs into an analytics store.

The feed only reads `DomainEvent`s. It never calls back into a domain, so a
failing store cannot change core state; store errors are logged by the
emitting `EventLog`.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Callable, Optional

from rebalancer.events import DomainEvent
from rebalancer.persistence.interfaces import AnalyticsStore
from rebalancer.persistence.records import (
    PaymentCurrency,
    PaymentRecord,
    PositionEventRecord,
    PositionEventType,
    PositionRecord,
    ReactiveLogRecord,
)

if TYPE_CHECKING:
    from rebalancer.domains import DestinationHandler, OriginPositionRegistry, ReactiveManager
    from rebalancer.relay import DeliveryFailure, InMemoryRelay

logger = logging.getLogger(__name__)

ORIGIN_EVENT_TYPES: dict[str, PositionEventType] = {
    "PositionCreated": "created",
    "PriceUpdate": "price_update",
    "LiquidityUpdate": "liquidity_update",
}


class AnalyticsFeed:
    """Subscribes to domain event logs and writes history to `store`."""

    def __init__(self, store: AnalyticsStore, *, currency: PaymentCurrency = "REACT") -> None:
        self.store = store
        self.currency = currency
        self._pending_logs: dict[str, tuple[int, int]] = {}  # callback id -> (log id, gas limit); closed by CallbackProcessed or a relay delivery failure
        self._manager_handlers: dict[str, Callable[[DomainEvent, dict[str, Any]], None]] = {
            "PositionCreated": self._position_created,
            "PositionUpdated": self._position_updated,
            "GasBudgetUpdated": self._gas_budget_updated,
            "PositionDeactivated": self._position_deactivated,
            "PaymentReceived": self._payment_received,
            "ReactiveActionTriggered": self._action_triggered,
            "CallbackEmitted": self._callback_emitted,
        }

    def attach(
        self,
        *,
        origin: Optional[OriginPositionRegistry] = None,
        manager: Optional[ReactiveManager] = None,
        destination: Optional[DestinationHandler] = None,
        relay: Optional[InMemoryRelay] = None,
    ) -> None:
        if origin is not None:
            origin.events.subscribe(self.on_origin_event)
        if manager is not None:
            manager.events.subscribe(self.on_manager_event)
        if destination is not None:
            destination.events.subscribe(self.on_destination_event)
        if relay is not None:
            relay.subscribe_failures(self.on_delivery_failure)

    # ---- origin

    def on_origin_event(self, event: DomainEvent) -> None:
        event_type = ORIGIN_EVENT_TYPES.get(event.name)
        if event_type is None or event.position_id is None:
            return
        self.store.record_position_event(
            event=PositionEventRecord(
                position_id=_hex(event.position_id),
                event_type=event_type,
                event_data=event.to_dict()["data"],
                created_at=event.timestamp,
            )
        )

    # ---- manager

    def on_manager_event(self, event: DomainEvent) -> None:
        handler = self._manager_handlers.get(event.name)
        if handler is None or event.position_id is None:
            return
        handler(event, event.to_dict()["data"])

    def _position_created(self, event: DomainEvent, data: dict[str, Any]) -> None:
        position_id = _hex(event.position_id)
        self.store.record_position(
            position=PositionRecord(
                position_id=position_id,
                owner=data["owner"],
                origin_chain_id=data["origin_chain_id"],
                origin_contract=data["origin_contract_ref"],
                origin_token=data["origin_token"],
                position_identifier=data["label"],
                threshold=data["threshold"],
                action_type=data["action_type"],
                gas_budget=data["gas_budget"],
                created_at=event.timestamp,
                updated_at=event.timestamp,
            )
        )
        self.store.record_position_event(
            event=PositionEventRecord(
                position_id=position_id, event_type="created", event_data=data, created_at=event.timestamp
            )
        )

    def _position_updated(self, event: DomainEvent, data: dict[str, Any]) -> None:
        self._update_position(
            event, threshold=data["threshold"], action_type=data["action_type"], updated_at=event.timestamp
        )

    def _gas_budget_updated(self, event: DomainEvent, data: dict[str, Any]) -> None:
        self._update_position(event, gas_budget=data["gas_budget"], updated_at=event.timestamp)

    def _position_deactivated(self, event: DomainEvent, data: dict[str, Any]) -> None:
        self._update_position(event, is_active=False, updated_at=event.timestamp)

    def _payment_received(self, event: DomainEvent, data: dict[str, Any]) -> None:
        self.store.record_payment(
            payment=PaymentRecord(
                owner=data["payer"],
                position_id=_hex(event.position_id),
                amount=data["amount"],
                currency=self.currency,
                status="confirmed",
                created_at=event.timestamp,
            )
        )

    def _action_triggered(self, event: DomainEvent, data: dict[str, Any]) -> None:
        self.store.record_position_event(
            event=PositionEventRecord(
                position_id=_hex(event.position_id),
                event_type="threshold_breach",
                event_data=data,
                created_at=event.timestamp,
            )
        )

    def _callback_emitted(self, event: DomainEvent, data: dict[str, Any]) -> None:
        log_id = self.store.record_reactive_log(
            log=ReactiveLogRecord(
                position_id=_hex(event.position_id),
                status="pending",
                payload=data,
                created_at=event.timestamp,
            )
        )
        self._pending_logs[data["callback_id"]] = (log_id, data["gas_limit"])

    def _update_position(self, event: DomainEvent, **changes: Any) -> None:
        position_id = _hex(event.position_id)
        existing = self.store.get_position(position_id=position_id)
        if existing is None:
            logger.warning(f"Analytics: {event.name} for unknown position {position_id}")
            return
        self.store.record_position(position=replace(existing, **changes))

    # ---- destination

    def on_destination_event(self, event: DomainEvent) -> None:
        if event.name != "CallbackProcessed":
            return
        data = event.to_dict()["data"]
        pending = self._pending_logs.pop(data["callback_id"], None)
        if pending is None:
            logger.debug(f"Analytics: no pending log for callback {data['callback_id']}")
            return
        log_id, gas_limit = pending
        self.store.update_reactive_log(
            log_id=log_id,
            status="success" if data["success"] else "failed",
            dest_tx_hash=data["tx_ref"],
            gas_used=gas_limit if data["success"] else 0,
        )

    # ---- relay

    def on_delivery_failure(self, failure: DeliveryFailure) -> None:
        if failure.kind != "callback":
            return
        callback_id = _hex(failure.reference)
        pending = self._pending_logs.pop(callback_id, None)
        if pending is None:
            return
        log_id, _ = pending
        logger.info(f"Analytics: callback {callback_id} was not delivered, log {log_id} failed")
        self.store.update_reactive_log(log_id=log_id, status="failed", gas_used=0)


def _hex(value: Optional[bytes]) -> str:
    return "0x" + bytes(value or b"").hex()
