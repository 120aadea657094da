"""Reactive manager: monitored positions, relay ingestion, threshold triggers.

`react()` is the single ingestion entrypoint. Its only authorization is the
caller check against the fixed relay identity; the payload itself is
untrusted and goes through dedup, decode and lookup before anything is
committed.

Accounting is optimistic: a trigger adds the position's configured gas
budget to `total_gas_used`, not a measured consumption. The callback request
is fire-and-forget; nothing here waits for or verifies execution.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import replace
from typing import Optional

from rebalancer.config import ManagerConfig
from rebalancer.domains.base import Clock, Domain
from rebalancer.errors import (
    AuthorizationError,
    EventAlreadyProcessed,
    StateError,
    ValidationError,
)
from rebalancer.guards import is_owner_or_admin, is_relay, same_identity
from rebalancer.ledger import DedupLedger, event_key
from rebalancer.relay.codec import (
    decode_creation_data,
    decode_envelope,
    decode_update_data,
    encode_action_data,
    encode_callback_call,
)
from rebalancer.types import (
    ActionData,
    ActionType,
    AggregateCounters,
    CallbackRequest,
    EventKind,
    MonitoredPosition,
    ReactOutcome,
    UnknownEventPolicy,
)
from rebalancer.units import BPS, ZERO_ADDRESS, is_zero_identity, normalize_address

logger = logging.getLogger(__name__)

TRIGGER_REASONS = {
    EventKind.PRICE_UPDATE: "price_threshold_breach",
    EventKind.LIQUIDITY_UPDATE: "liquidity_threshold_breach",
}


class ReactiveManager(Domain):
    """Monitoring domain between the origin registry and the destination handler."""

    name = "manager"

    def __init__(self, config: ManagerConfig, *, clock: Optional[Clock] = None) -> None:
        super().__init__(admin=config.admin, clock=clock)
        if not 0 <= config.max_slippage_bps < BPS:
            raise ValueError("max_slippage_bps must be in [0, 10000)")
        self.config = config
        self.relay_identity = normalize_address(config.relay_identity, field="relay_identity")
        self.destination_chain_id = config.destination_chain_id
        self.destination_contract = normalize_address(
            config.destination_contract, field="destination_contract", allow_zero=True
        )
        self.counters = AggregateCounters()
        self.processed_events = DedupLedger(name="manager-events", clock=self._clock)
        self.escrow_balance = 0
        self._positions: dict[bytes, MonitoredPosition] = {}
        self._by_owner: dict[str, list[bytes]] = defaultdict(list)
        self._by_origin_position: dict[bytes, bytes] = {}

    # ---- views

    @property
    def total_positions(self) -> int:
        return self.counters.total_positions

    @property
    def total_reactive_actions(self) -> int:
        return self.counters.total_reactive_actions

    @property
    def total_gas_used(self) -> int:
        return self.counters.total_gas_used

    def get_position(self, position_id: bytes) -> Optional[MonitoredPosition]:
        position = self._positions.get(bytes(position_id))
        return None if position is None else replace(position)

    def get_user_positions(self, owner: str) -> list[bytes]:
        return list(self._by_owner.get(normalize_address(owner, field="owner"), []))

    # ---- owner mutations

    def create_position(
        self,
        *,
        caller: str,
        origin_chain_id: int,
        origin_contract_ref: Optional[str],
        origin_token: Optional[str],
        label: str,
        threshold: int,
        action_type: ActionType | str,
        gas_budget: int,
        payment: int,
        origin_position_id: Optional[bytes] = None,
    ) -> bytes:
        with self._transaction("create_position"):
            owner = normalize_address(caller, field="caller")
            if is_zero_identity(origin_contract_ref):
                raise ValidationError("Invalid origin contract")
            origin_contract_ref = normalize_address(origin_contract_ref, field="origin_contract_ref")
            token = None if is_zero_identity(origin_token) else normalize_address(origin_token, field="origin_token")
            if not label or not label.strip():
                raise ValidationError("Invalid label: empty")
            if threshold <= 0:
                raise ValidationError("Invalid threshold")
            action = ActionType.parse(action_type)
            if gas_budget <= 0:
                raise ValidationError("Invalid gas budget")
            if payment < gas_budget:
                raise ValidationError("Insufficient gas payment")
            if origin_position_id is not None:
                origin_position_id = bytes(origin_position_id)
                if len(origin_position_id) != 32:
                    raise ValidationError("Invalid origin position id")
                linked = self._by_origin_position.get(origin_position_id)
                if linked is not None and self._positions[linked].active:
                    raise ValidationError("Origin position already monitored")

            position_id = self._derive_id(["address", "string", "uint256"], [owner, label, origin_chain_id])
            self._positions[position_id] = MonitoredPosition(
                id=position_id,
                owner=owner,
                origin_chain_id=origin_chain_id,
                origin_contract_ref=origin_contract_ref,
                origin_token=token,
                origin_position_id=origin_position_id,
                label=label,
                threshold=threshold,
                action_type=action,
                gas_budget=gas_budget,
                created_at=self.now(),
            )
            self._by_owner[owner].append(position_id)
            if origin_position_id is not None:
                self._by_origin_position[origin_position_id] = position_id
            self.escrow_balance += payment
            self.counters.total_positions += 1

            logger.info(
                f"Monitoring 0x{position_id.hex()[:12]} ({label}) threshold={threshold} action={action.value}"
            )
            self.events.emit(
                "PositionCreated",
                position_id=position_id,
                owner=owner,
                origin_chain_id=origin_chain_id,
                origin_contract_ref=origin_contract_ref,
                origin_token=token,
                label=label,
                threshold=threshold,
                action_type=action,
                gas_budget=gas_budget,
            )
            self.events.emit("PaymentReceived", position_id=position_id, payer=owner, amount=payment)
            return position_id

    def update_position(
        self,
        position_id: bytes,
        new_threshold: int,
        new_action_type: ActionType | str,
        new_gas_budget: int,
        *,
        caller: str,
        payment: int = 0,
    ) -> None:
        with self._transaction("update_position"):
            position = self._require_owned_active(position_id, caller)
            if new_threshold <= 0:
                raise ValidationError("Invalid threshold")
            action = ActionType.parse(new_action_type)
            budget_changed = new_gas_budget != position.gas_budget
            if budget_changed:
                self._check_budget_payment(new_gas_budget, payment)

            position.threshold = new_threshold
            position.action_type = action
            self.escrow_balance += payment
            logger.info(f"Updated 0x{position.id.hex()[:12]}: threshold={new_threshold} action={action.value}")
            self.events.emit(
                "PositionUpdated", position_id=position.id, threshold=new_threshold, action_type=action
            )
            if budget_changed:
                self._apply_budget(position, new_gas_budget)
            if payment:
                self.events.emit("PaymentReceived", position_id=position.id, payer=position.owner, amount=payment)

    def update_gas_budget(self, position_id: bytes, new_budget: int, *, caller: str, payment: int) -> None:
        """Replace the gas budget; `payment` must cover the new budget or nothing changes."""
        with self._transaction("update_gas_budget"):
            position = self._require_owned_active(position_id, caller)
            self._check_budget_payment(new_budget, payment)

            self.escrow_balance += payment
            self._apply_budget(position, new_budget)
            self.events.emit("PaymentReceived", position_id=position.id, payer=position.owner, amount=payment)

    def deactivate_position(self, position_id: bytes, *, caller: str) -> None:
        with self._transaction("deactivate_position"):
            position = self._require_known(position_id)
            if not is_owner_or_admin(position.owner, self.admin, caller):
                raise AuthorizationError("Not position owner")
            self._ensure_active(position)

            position.active = False
            logger.info(f"Deactivated 0x{position.id.hex()[:12]}")
            self.events.emit(
                "PositionDeactivated", position_id=position.id, by=normalize_address(caller, field="caller")
            )

    # ---- admin

    def withdraw_gas_fees(self, *, caller: str) -> int:
        """Move the escrowed payments to the admin. Returns the amount moved."""
        with self._transaction("withdraw_gas_fees"):
            self._require_admin(caller)
            if self.escrow_balance <= 0:
                raise StateError("No gas fees to withdraw")
            amount = self.escrow_balance
            self.escrow_balance = 0
            logger.info(f"Gas fees withdrawn: {amount}")
            self.events.emit("GasFeesWithdrawn", recipient=self.admin, amount=amount)
            return amount

    # ---- relay ingestion

    def react(self, payload: bytes, *, caller: str) -> ReactOutcome:
        """Process one relayed origin event."""
        with self._transaction("react"):
            if not is_relay(self.relay_identity, caller):
                raise AuthorizationError("Only the relay can call react")

            envelope = decode_envelope(payload)
            dedup_key = event_key(envelope.signature, envelope.position_id, envelope.event_data)
            if dedup_key in self.processed_events:
                logger.warning(f"Duplicate event 0x{dedup_key.hex()[:12]} rejected")
                raise EventAlreadyProcessed(dedup_key)

            position = self._resolve(envelope.position_id)
            if position is None:
                raise StateError("Position not monitored")
            self._ensure_active(position)

            kind = EventKind.from_topic(envelope.signature)
            if kind is None:
                if self.config.unknown_event_policy is UnknownEventPolicy.REJECT:
                    raise ValidationError(f"Unknown event signature 0x{envelope.signature.hex()}")
                self.processed_events.mark(dedup_key)
                logger.debug(f"Ignoring unknown event signature 0x{envelope.signature.hex()[:12]}")
                return ReactOutcome(dedup_key=dedup_key, position_id=position.id, kind=None, ignored=True)

            if kind is EventKind.POSITION_CREATED:
                creation = decode_creation_data(envelope.event_data)
                self.processed_events.mark(dedup_key)
                return self._on_position_created(position, dedup_key, envelope.position_id, creation)

            old_value, new_value, delta = decode_update_data(envelope.event_data)
            self.processed_events.mark(dedup_key)
            return self._on_update(position, kind, dedup_key, old_value, new_value, delta)

    # ---- handlers

    def _on_position_created(
        self,
        position: MonitoredPosition,
        dedup_key: bytes,
        origin_position_id: bytes,
        creation: dict[str, object],
    ) -> ReactOutcome:
        logger.info(f"Origin position 0x{origin_position_id.hex()[:12]} observed for 0x{position.id.hex()[:12]}")
        self.events.emit(
            "OriginPositionObserved",
            position_id=position.id,
            origin_position_id=origin_position_id,
            **creation,
        )
        return ReactOutcome(dedup_key=dedup_key, position_id=position.id, kind=EventKind.POSITION_CREATED)

    def _on_update(
        self,
        position: MonitoredPosition,
        kind: EventKind,
        dedup_key: bytes,
        old_value: int,
        new_value: int,
        delta: int,
    ) -> ReactOutcome:
        abs_delta = abs(delta)
        if abs_delta < position.threshold:
            logger.debug(
                f"{kind.event_name} for 0x{position.id.hex()[:12]} below threshold: {abs_delta} < {position.threshold}"
            )
            return ReactOutcome(dedup_key=dedup_key, position_id=position.id, kind=kind, abs_delta=abs_delta)

        request = self._trigger_action(
            position,
            TRIGGER_REASONS[kind],
            dedup_key=dedup_key,
            abs_delta=abs_delta,
            counters=self.counters,
            observed={"old_value": old_value, "new_value": new_value, "delta": delta},
        )
        return ReactOutcome(
            dedup_key=dedup_key,
            position_id=position.id,
            kind=kind,
            triggered=True,
            abs_delta=abs_delta,
            callback=request,
        )

    def _trigger_action(
        self,
        position: MonitoredPosition,
        reason: str,
        *,
        dedup_key: bytes,
        abs_delta: int,
        counters: AggregateCounters,
        observed: dict[str, int],
    ) -> CallbackRequest:
        position.last_triggered_at = self.now()
        counters.total_reactive_actions += 1
        counters.total_gas_used += position.gas_budget

        action = ActionData(
            action_type=position.action_type.value,
            token_in=position.origin_token or ZERO_ADDRESS,
            token_out=normalize_address(self.config.hedge_token_out, field="hedge_token_out", allow_zero=True),
            amount=abs_delta,
            min_amount_out=abs_delta * (BPS - self.config.max_slippage_bps) // BPS,
        )
        action_data = encode_action_data(action)
        callback_id = self._derive_id(["bytes32", "bytes32"], [position.id, dedup_key])
        request = CallbackRequest(
            callback_id=callback_id,
            position_id=position.id,
            dest_chain_id=self.destination_chain_id,
            dest_contract=self.destination_contract,
            action_data=action_data,
            encoded_call=encode_callback_call(callback_id, position.id, action_data),
            gas_limit=position.gas_budget,
            value=0,
        )

        logger.info(
            f"Triggered {position.action_type.value} for 0x{position.id.hex()[:12]} ({reason}, |delta|={abs_delta})"
        )
        self.events.emit(
            "ReactiveActionTriggered",
            position_id=position.id,
            reason=reason,
            abs_delta=abs_delta,
            threshold=position.threshold,
            gas_budget=position.gas_budget,
            action_type=position.action_type,
            **observed,
        )
        self.events.emit(
            "CallbackEmitted",
            position_id=position.id,
            callback_id=callback_id,
            dest_chain_id=request.dest_chain_id,
            dest_contract=request.dest_contract,
            action_data=action_data,
            encoded_call=request.encoded_call,
            gas_limit=request.gas_limit,
            value=request.value,
        )
        return request

    # ---- helpers

    def _resolve(self, position_id: bytes) -> Optional[MonitoredPosition]:
        position = self._positions.get(position_id)
        if position is not None:
            return position
        linked = self._by_origin_position.get(position_id)
        return None if linked is None else self._positions[linked]

    def _require_known(self, position_id: bytes) -> MonitoredPosition:
        position = self._positions.get(bytes(position_id))
        if position is None:
            raise StateError("Position not found")
        return position

    @staticmethod
    def _ensure_active(position: MonitoredPosition) -> None:
        if not position.active:
            raise StateError("Position not active")

    def _require_owned_active(self, position_id: bytes, caller: str) -> MonitoredPosition:
        position = self._require_known(position_id)
        if not same_identity(position.owner, caller):
            raise AuthorizationError("Not position owner")
        self._ensure_active(position)
        return position

    @staticmethod
    def _check_budget_payment(new_budget: int, payment: int) -> None:
        if new_budget <= 0:
            raise ValidationError("Invalid gas budget")
        if payment < new_budget:
            raise ValidationError("Insufficient gas payment")

    def _apply_budget(self, position: MonitoredPosition, new_budget: int) -> None:
        old_budget = position.gas_budget
        position.gas_budget = new_budget
        logger.info(f"Gas budget for 0x{position.id.hex()[:12]}: {old_budget} -> {new_budget}")
        self.events.emit("GasBudgetUpdated", position_id=position.id, old_budget=old_budget, gas_budget=new_budget)
