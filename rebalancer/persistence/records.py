"""Analytics records.

Ids are 0x-prefixed hex strings and uint256 amounts are plain ints, so the
records stay independent of the domain types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional

PositionEventType = Literal["created", "price_update", "liquidity_update", "threshold_breach"]
ReactiveLogStatus = Literal["pending", "success", "failed"]
PaymentCurrency = Literal["REACT", "ETH", "USDC"]
PaymentStatus = Literal["pending", "confirmed", "failed"]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PositionRecord:
    position_id: str
    owner: str
    origin_chain_id: int
    origin_contract: str
    threshold: int
    action_type: str
    gas_budget: int
    position_identifier: Optional[str] = None
    origin_token: Optional[str] = None
    is_active: bool = True
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True)
class PositionEventRecord:
    position_id: str
    event_type: PositionEventType
    event_data: dict[str, Any] = field(default_factory=dict)
    origin_tx_hash: Optional[str] = None
    created_at: datetime = field(default_factory=_utc_now)
    id: Optional[int] = None


@dataclass(frozen=True)
class ReactiveLogRecord:
    position_id: str
    status: ReactiveLogStatus
    payload: dict[str, Any] = field(default_factory=dict)
    reactive_tx_hash: Optional[str] = None
    origin_tx_hash: Optional[str] = None
    dest_tx_hash: Optional[str] = None
    gas_used: Optional[int] = None
    created_at: datetime = field(default_factory=_utc_now)
    id: Optional[int] = None


@dataclass(frozen=True)
class PaymentRecord:
    owner: str
    amount: int
    currency: PaymentCurrency
    status: PaymentStatus = "confirmed"
    position_id: Optional[str] = None
    tx_hash: Optional[str] = None
    created_at: datetime = field(default_factory=_utc_now)
    id: Optional[int] = None
