from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from web3 import Web3

from rebalancer.errors import ValidationError


class ActionType(str, Enum):
    """Closed set of actions a monitored position can request."""

    REBALANCE = "rebalance"
    PARTIAL_UNWIND = "partial_unwind"
    HEDGE = "hedge"

    @classmethod
    def parse(cls, value: "ActionType | str | None") -> "ActionType":
        if isinstance(value, ActionType):
            return value
        if not value:
            raise ValidationError("Invalid action type: empty")
        try:
            return cls(value)
        except ValueError as exc:
            raise ValidationError(f"Invalid action type: {value!r}") from exc


class EventKind(str, Enum):
    """Origin events the manager knows how to handle."""

    POSITION_CREATED = "PositionCreated(bytes32,address,address,address,uint256,uint256,uint256)"
    PRICE_UPDATE = "PriceUpdate(bytes32,uint256,uint256,int256)"
    LIQUIDITY_UPDATE = "LiquidityUpdate(bytes32,uint256,uint256,int256)"

    @property
    def topic(self) -> bytes:
        return bytes(Web3.keccak(text=self.value))

    @property
    def event_name(self) -> str:
        return self.value.split("(", 1)[0]

    @classmethod
    def from_topic(cls, topic: bytes) -> Optional["EventKind"]:
        """Resolve a 32-byte signature; None for signatures we do not know."""
        return _KIND_BY_TOPIC.get(bytes(topic))

    @classmethod
    def from_event_name(cls, name: str) -> Optional["EventKind"]:
        for kind in cls:
            if kind.event_name == name:
                return kind
        return None


_KIND_BY_TOPIC: dict[bytes, EventKind] = {kind.topic: kind for kind in EventKind}


class UnknownEventPolicy(str, Enum):
    """What `react()` does with an event signature it does not recognise."""

    IGNORE = "ignore"
    REJECT = "reject"


@dataclass
class Position:
    """Origin-domain position record."""

    id: bytes
    owner: str
    asset_a: str
    asset_b: str
    amount_a: int
    amount_b: int
    current_price: int  # fixed point, SCALE
    liquidity: int
    created_at: datetime
    active: bool = True


@dataclass
class MonitoredPosition:
    """Manager-domain monitoring record."""

    id: bytes
    owner: str
    origin_chain_id: int
    origin_contract_ref: str
    label: str
    threshold: int  # fixed point, SCALE
    action_type: ActionType
    gas_budget: int
    created_at: datetime
    origin_token: Optional[str] = None
    origin_position_id: Optional[bytes] = None
    active: bool = True
    last_triggered_at: Optional[datetime] = None


@dataclass
class AggregateCounters:
    """Manager-wide totals. Every field only ever grows."""

    total_positions: int = 0
    total_reactive_actions: int = 0
    total_gas_used: int = 0

    def snapshot(self) -> "AggregateCounters":
        return AggregateCounters(
            total_positions=self.total_positions,
            total_reactive_actions=self.total_reactive_actions,
            total_gas_used=self.total_gas_used,
        )


@dataclass(frozen=True)
class CallbackRequest:
    """Downstream action requested by the manager, delivered by the relay."""

    callback_id: bytes
    position_id: bytes
    dest_chain_id: int
    dest_contract: str
    action_data: bytes
    encoded_call: bytes
    gas_limit: int
    value: int = 0


@dataclass(frozen=True)
class ReactOutcome:
    """Result of one `react()` call."""

    dedup_key: bytes
    position_id: bytes
    kind: Optional[EventKind]
    ignored: bool = False
    triggered: bool = False
    abs_delta: Optional[int] = None
    callback: Optional[CallbackRequest] = None


@dataclass(frozen=True)
class ActionData:
    """Decoded callback action payload."""

    action_type: str
    token_in: str
    token_out: str
    amount: int
    min_amount_out: int


@dataclass(frozen=True)
class HedgeResult:
    amount_out: int
    tx_ref: bytes


@dataclass(frozen=True)
class RebalanceResult:
    success: bool
    tx_ref: bytes


@dataclass(frozen=True)
class Subscription:
    """Relay subscription to one event topic of one origin contract."""

    id: bytes
    origin_contract_ref: str
    topic: bytes
