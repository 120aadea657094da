"""Origin position registry.

Owns position records and emits the change events the relay forwards to
the reactive manager:

- PositionCreated(id, owner, asset_a, asset_b, amount_a, amount_b, price)
- PriceUpdate(id, old_value, new_value, delta)
- LiquidityUpdate(id, old_value, new_value, delta)
- PositionClosed / EmergencyWithdrawal

Deltas are signed relative changes at SCALE.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import replace
from typing import Optional

from rebalancer.config import OriginConfig
from rebalancer.domains.base import Clock, Domain
from rebalancer.errors import AuthorizationError, StateError, ValidationError
from rebalancer.guards import is_owner_or_admin
from rebalancer.types import Position
from rebalancer.units import MAX_PRICE_CHANGE, SCALE, normalize_address, relative_delta

logger = logging.getLogger(__name__)


class OriginPositionRegistry(Domain):
    """Registry of escrowed two-asset positions."""

    name = "origin"

    PRICE_PRECISION = SCALE
    MAX_PRICE_CHANGE = MAX_PRICE_CHANGE

    def __init__(self, config: OriginConfig, *, clock: Optional[Clock] = None) -> None:
        super().__init__(admin=config.admin, clock=clock)
        self.config = config
        self.chain_id = config.chain_id
        self.contract_ref = normalize_address(config.contract_ref, field="contract_ref", allow_zero=True)
        self._positions: dict[bytes, Position] = {}
        self._by_owner: dict[str, list[bytes]] = defaultdict(list)
        self._payouts: dict[tuple[str, str], int] = defaultdict(int)

    # ---- views

    @property
    def total_positions(self) -> int:
        return len(self._positions)

    def get_position(self, position_id: bytes) -> Optional[Position]:
        position = self._positions.get(bytes(position_id))
        return None if position is None else replace(position)

    def get_user_positions(self, owner: str) -> list[bytes]:
        return list(self._by_owner.get(normalize_address(owner, field="owner"), []))

    def balance_of(self, account: str, asset: str) -> int:
        """Escrow payouts credited to `account` by close or emergency withdraw."""
        key = (normalize_address(account, field="account"), normalize_address(asset, field="asset"))
        return self._payouts.get(key, 0)

    # ---- mutations

    def create_position(
        self,
        owner: str,
        asset_a: Optional[str],
        asset_b: Optional[str],
        amount_a: int,
        amount_b: int,
    ) -> bytes:
        with self._transaction("create_position"):
            owner = normalize_address(owner, field="owner")
            try:
                asset_a = normalize_address(asset_a, field="asset_a")
                asset_b = normalize_address(asset_b, field="asset_b")
            except ValidationError as exc:
                raise ValidationError(f"Invalid token addresses: {exc}") from exc
            if asset_a == asset_b:
                raise ValidationError("Tokens must be different")
            if amount_a <= 0 or amount_b <= 0:
                raise ValidationError("Amounts must be positive")

            initial_price = amount_b * SCALE // amount_a
            liquidity = amount_a + amount_b

            position_id = self._derive_id(["address", "address", "address"], [owner, asset_a, asset_b])
            self._positions[position_id] = Position(
                id=position_id,
                owner=owner,
                asset_a=asset_a,
                asset_b=asset_b,
                amount_a=amount_a,
                amount_b=amount_b,
                current_price=initial_price,
                liquidity=liquidity,
                created_at=self.now(),
            )
            self._by_owner[owner].append(position_id)

            logger.info(f"Origin position created 0x{position_id.hex()[:12]} owner={owner} price={initial_price}")
            self.events.emit(
                "PositionCreated",
                position_id=position_id,
                owner=owner,
                asset_a=asset_a,
                asset_b=asset_b,
                amount_a=amount_a,
                amount_b=amount_b,
                price=initial_price,
            )
            return position_id

    def update_price(self, position_id: bytes, new_price: int, *, caller: str) -> int:
        """Admin price update. Returns the signed relative delta."""
        with self._transaction("update_price"):
            self._require_admin(caller)
            position = self._require_active(position_id)
            if new_price <= 0:
                raise ValidationError("Invalid price")

            old_price = position.current_price
            delta = relative_delta(old_price, new_price)
            if abs(delta) > MAX_PRICE_CHANGE:
                raise ValidationError(f"Price change too large: {delta} > {MAX_PRICE_CHANGE}")

            position.current_price = new_price
            logger.info(f"Price update 0x{position.id.hex()[:12]}: {old_price} -> {new_price} (delta={delta})")
            self.events.emit(
                "PriceUpdate", position_id=position.id, old_value=old_price, new_value=new_price, delta=delta
            )
            return delta

    def update_liquidity(self, position_id: bytes, new_liquidity: int, *, caller: str) -> int:
        """Admin liquidity update, without a magnitude cap. Returns the signed relative delta."""
        with self._transaction("update_liquidity"):
            self._require_admin(caller)
            position = self._require_active(position_id)
            if new_liquidity <= 0:
                raise ValidationError("Invalid liquidity")

            old_liquidity = position.liquidity
            delta = relative_delta(old_liquidity, new_liquidity)
            position.liquidity = new_liquidity
            logger.info(
                f"Liquidity update 0x{position.id.hex()[:12]}: {old_liquidity} -> {new_liquidity} (delta={delta})"
            )
            self.events.emit(
                "LiquidityUpdate",
                position_id=position.id,
                old_value=old_liquidity,
                new_value=new_liquidity,
                delta=delta,
            )
            return delta

    def close_position(self, position_id: bytes, *, caller: str) -> None:
        """Owner (or admin) closes; escrowed assets go back to the owner."""
        with self._transaction("close_position"):
            position = self._require_known(position_id)
            if not is_owner_or_admin(position.owner, self.admin, caller):
                raise AuthorizationError("Not position owner")
            self._ensure_active(position)
            self._release_escrow(position, recipient=position.owner)
            logger.info(f"Origin position closed 0x{position.id.hex()[:12]}")
            self.events.emit("PositionClosed", position_id=position.id, owner=position.owner)

    def emergency_withdraw(self, position_id: bytes, *, caller: str) -> None:
        """Admin recovery path: deactivate and route escrow to the admin."""
        with self._transaction("emergency_withdraw"):
            self._require_admin(caller)
            position = self._require_active(position_id)
            self._release_escrow(position, recipient=self.admin)
            logger.warning(f"Emergency withdrawal of 0x{position.id.hex()[:12]} to admin")
            self.events.emit("EmergencyWithdrawal", position_id=position.id, recipient=self.admin)

    # ---- helpers

    def _require_known(self, position_id: bytes) -> Position:
        position = self._positions.get(bytes(position_id))
        if position is None:
            raise StateError("Position not found")
        return position

    @staticmethod
    def _ensure_active(position: Position) -> None:
        if not position.active:
            raise StateError("Position not active")

    def _require_active(self, position_id: bytes) -> Position:
        position = self._require_known(position_id)
        self._ensure_active(position)
        return position

    def _release_escrow(self, position: Position, *, recipient: str) -> None:
        position.active = False
        self._payouts[(recipient, position.asset_a)] += position.amount_a
        self._payouts[(recipient, position.asset_b)] += position.amount_b
