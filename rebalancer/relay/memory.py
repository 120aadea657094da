"""In-process relay between the three domains.

The relay listens to the origin and manager event logs, queues what it
sees, and delivers only when `pump()` is called. Nothing is delivered from
inside the emitting call. Delivery failures are logged and recorded, and
never retried.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Iterator, Literal, Optional

from web3 import Web3

from rebalancer.config import RelayConfig
from rebalancer.errors import RebalancerError, StateError, ValidationError
from rebalancer.events import DomainEvent
from rebalancer.guards import sign_callback
from rebalancer.relay.codec import decode_callback_call, envelope_from_event
from rebalancer.types import EventKind, ReactOutcome, Subscription
from rebalancer.units import normalize_address

if TYPE_CHECKING:
    from rebalancer.domains import DestinationHandler, OriginPositionRegistry, ReactiveManager

logger = logging.getLogger(__name__)

DeliveryKind = Literal["event", "callback"]


class SubscriptionRegistry:
    """Which (origin contract, event topic) pairs the relay forwards."""

    def __init__(self) -> None:
        self._subscriptions: dict[bytes, Subscription] = {}
        self._nonce = 0

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __iter__(self) -> Iterator[Subscription]:
        return iter(list(self._subscriptions.values()))

    def subscribe(self, origin_contract_ref: str, topic: bytes) -> Subscription:
        origin_contract_ref = normalize_address(origin_contract_ref, field="origin_contract_ref")
        topic = bytes(topic)
        if len(topic) != 32:
            raise ValidationError("Topic must be 32 bytes")
        if self.matches(origin_contract_ref, topic):
            raise StateError("Already subscribed")

        self._nonce += 1
        subscription_id = bytes(
            Web3.solidity_keccak(["address", "bytes32", "uint256"], [origin_contract_ref, topic, self._nonce])
        )
        subscription = Subscription(id=subscription_id, origin_contract_ref=origin_contract_ref, topic=topic)
        self._subscriptions[subscription_id] = subscription
        logger.info(f"Subscribed 0x{subscription_id.hex()[:12]}: {origin_contract_ref} topic 0x{topic.hex()[:12]}")
        return subscription

    def subscribe_all(self, origin_contract_ref: str) -> list[Subscription]:
        """Subscribe to every event kind the manager handles."""
        return [self.subscribe(origin_contract_ref, kind.topic) for kind in EventKind]

    def unsubscribe(self, subscription_id: bytes) -> None:
        if self._subscriptions.pop(bytes(subscription_id), None) is None:
            raise StateError("Subscription not found")

    def matches(self, origin_contract_ref: str, topic: bytes) -> bool:
        return any(
            s.origin_contract_ref == origin_contract_ref and s.topic == topic for s in self._subscriptions.values()
        )


@dataclass(frozen=True)
class DeliveryFailure:
    """A delivery the target rejected."""

    kind: DeliveryKind
    reference: bytes  # envelope position id or callback id
    error: str
    failed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class _Pending:
    kind: DeliveryKind
    payload: Any


class InMemoryRelay:
    """Queue-and-pump transport: origin -> manager -> destination."""

    def __init__(
        self,
        config: RelayConfig,
        *,
        origin: OriginPositionRegistry,
        manager: ReactiveManager,
        destination: DestinationHandler,
        registry: Optional[SubscriptionRegistry] = None,
    ) -> None:
        self.identity = normalize_address(config.identity, field="relay identity")
        self._signer_key = config.signer_key
        self.origin = origin
        self.manager = manager
        self.destination = destination
        self.registry = registry or SubscriptionRegistry()
        self._queue: deque[_Pending] = deque()
        self.failures: list[DeliveryFailure] = []
        self.outcomes: list[ReactOutcome] = []
        self.callback_results: dict[bytes, bool] = {}
        self._failure_listeners: list[Callable[[DeliveryFailure], None]] = []

        origin.events.subscribe(self._on_origin_event)
        manager.events.subscribe(self._on_manager_event)

    @property
    def pending(self) -> int:
        return len(self._queue)

    def subscribe_failures(self, listener: Callable[[DeliveryFailure], None]) -> None:
        """Call `listener` with every recorded delivery failure."""
        self._failure_listeners.append(listener)

    def _on_origin_event(self, event: DomainEvent) -> None:
        kind = EventKind.from_event_name(event.name)
        if kind is None:
            return
        if not self.registry.matches(self.origin.contract_ref, kind.topic):
            logger.debug(f"No subscription for {event.name} from {self.origin.contract_ref}")
            return
        self._queue.append(_Pending(kind="event", payload=envelope_from_event(event)))

    def _on_manager_event(self, event: DomainEvent) -> None:
        if event.name == "CallbackEmitted":
            self._queue.append(_Pending(kind="callback", payload=dict(event.data)))

    def pump(self, max_deliveries: Optional[int] = None) -> int:
        """Deliver queued items, including ones queued while pumping.

        Returns:
            Number of deliveries attempted
        """
        attempted = 0
        while self._queue and (max_deliveries is None or attempted < max_deliveries):
            item = self._queue.popleft()
            attempted += 1
            if item.kind == "event":
                self._deliver_event(item.payload)
            else:
                self._deliver_callback(item.payload)
        return attempted

    def deliver_raw(self, payload: bytes) -> Optional[ReactOutcome]:
        """Deliver an arbitrary payload to the manager as the relay identity."""
        return self._deliver_event(payload)

    def _deliver_event(self, payload: bytes) -> Optional[ReactOutcome]:
        try:
            outcome = self.manager.react(payload, caller=self.identity)
        except RebalancerError as exc:
            reference = bytes(payload[32:64]) if len(payload) >= 64 else b""
            self._record_failure("event", reference, exc)
            return None
        self.outcomes.append(outcome)
        return outcome

    def _deliver_callback(self, data: dict[str, Any]) -> Optional[bool]:
        callback_id = data["callback_id"]
        if not self._signer_key:
            self._record_failure("callback", callback_id, StateError("Relay has no signer key"))
            return None
        try:
            callback_id, position_id, action_data = decode_callback_call(data["encoded_call"])
            signature = sign_callback(self._signer_key, position_id, data["dest_chain_id"])
            success = self.destination.process_callback(callback_id, position_id, action_data, signature)
        except RebalancerError as exc:
            self._record_failure("callback", callback_id, exc)
            return None
        self.callback_results[callback_id] = success
        return success

    def _record_failure(self, kind: DeliveryKind, reference: bytes, exc: Exception) -> None:
        logger.warning(f"Relay {kind} delivery 0x{bytes(reference).hex()[:12]} failed: {exc}")
        failure = DeliveryFailure(kind=kind, reference=bytes(reference), error=str(exc))
        self.failures.append(failure)
        for listener in self._failure_listeners:
            try:
                listener(failure)
            except Exception:
                logger.exception(f"Relay failure listener failed on 0x{failure.reference.hex()[:12]}")
