"""Destination execution handler.

Two entry paths, two trust checks, both against this domain's own
allow-list:

- direct calls (`execute_hedging_trade`, `execute_rebalancing`): the caller
  must be allow-listed
- relayed callbacks (`process_callback`): the signature over
  (position_id, chain_id) must recover to an allow-listed signer

A callback id is consumed once it passes dedup and signature checks, even
when the inner action then fails.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Optional

from rebalancer.config import DestinationConfig
from rebalancer.domains.base import Clock, Domain
from rebalancer.errors import (
    AuthorizationError,
    EventAlreadyProcessed,
    RebalancerError,
    SlippageError,
    StateError,
    ValidationError,
)
from rebalancer.execution import ExecutionVenue, PaperVenue, resolve_strategy
from rebalancer.guards import is_allow_listed, recover_callback_signer
from rebalancer.ledger import DedupLedger, callback_key
from rebalancer.relay.codec import decode_action_data
from rebalancer.types import ActionData, ActionType, HedgeResult, RebalanceResult
from rebalancer.units import normalize_address

logger = logging.getLogger(__name__)


class DestinationHandler(Domain):
    """Executes hedges and rebalances requested by callbacks or allow-listed callers."""

    name = "destination"

    def __init__(
        self,
        config: DestinationConfig,
        *,
        venue: Optional[ExecutionVenue] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(admin=config.admin, clock=clock)
        self.config = config
        self.chain_id = config.chain_id
        self.venue: ExecutionVenue = venue or PaperVenue()
        self.processed_callbacks = DedupLedger(name="destination-callbacks", clock=self._clock)
        self._authorized: set[str] = {
            normalize_address(caller, field="authorized_caller") for caller in config.authorized_callers
        }
        self._balances: dict[str, int] = defaultdict(int)
        self._exposure: dict[bytes, int] = defaultdict(int)

    # ---- views

    @property
    def authorized_callers(self) -> frozenset[str]:
        return frozenset(self._authorized)

    def is_authorized(self, caller: Optional[str]) -> bool:
        return is_allow_listed(self._authorized, caller)

    def balance_of(self, token: str) -> int:
        return self._balances.get(normalize_address(token, field="token"), 0)

    def exposure_of(self, position_id: bytes) -> int:
        return self._exposure.get(bytes(position_id), 0)

    # ---- admin

    def update_authorized_caller(self, account: str, allowed: bool, *, caller: str) -> None:
        with self._transaction("update_authorized_caller"):
            self._require_admin(caller)
            account = normalize_address(account, field="account")
            if allowed:
                self._authorized.add(account)
            else:
                self._authorized.discard(account)
            logger.info(f"Authorized caller {account}: {allowed}")
            self.events.emit("AuthorizedCallerUpdated", account=account, allowed=allowed)

    def deposit(self, token: str, amount: int, *, caller: str) -> None:
        """Fund the handler's inventory of `token`."""
        with self._transaction("deposit"):
            self._require_admin(caller)
            token = normalize_address(token, field="token")
            if amount <= 0:
                raise ValidationError("Amount must be positive")
            self._balances[token] += amount
            self.events.emit("Deposited", token=token, amount=amount, balance=self._balances[token])

    # ---- direct calls

    def execute_hedging_trade(
        self,
        position_id: bytes,
        token_in: Optional[str],
        token_out: Optional[str],
        amount_in: int,
        min_amount_out: int,
        *,
        caller: str,
    ) -> HedgeResult:
        with self._transaction("execute_hedging_trade"):
            self._require_authorized(caller)
            return self._hedge(bytes(position_id), token_in, token_out, amount_in, min_amount_out)

    def execute_rebalancing(
        self,
        position_id: bytes,
        action_type: ActionType | str,
        amount: int,
        *,
        caller: str,
    ) -> RebalanceResult:
        with self._transaction("execute_rebalancing"):
            self._require_authorized(caller)
            return self._rebalance(bytes(position_id), action_type, amount)

    # ---- relayed callbacks

    def process_callback(
        self,
        callback_id: bytes,
        position_id: bytes,
        action_data: bytes,
        signature: bytes,
    ) -> bool:
        """Consume a callback and run its action.

        Returns:
            True if the inner action succeeded, False if it failed. Either
            way the callback id is now processed.

        Raises:
            EventAlreadyProcessed: callback id already consumed
            AuthorizationError: signer not on the allow-list
            MalformedPayload: undecodable action data
        """
        with self._transaction("process_callback"):
            key = callback_key(callback_id)
            position_id = bytes(position_id)
            if key in self.processed_callbacks:
                logger.warning(f"Duplicate callback 0x{key.hex()[:12]} rejected")
                raise EventAlreadyProcessed(key)

            signer = recover_callback_signer(position_id, self.chain_id, bytes(signature or b""))
            if signer is None or signer not in self._authorized:
                raise AuthorizationError("Invalid callback signature")

            action = decode_action_data(action_data)
            self.processed_callbacks.mark(key)

            success, tx_ref = self._run_action(position_id, action)
            logger.info(f"Callback 0x{key.hex()[:12]} for 0x{position_id.hex()[:12]} processed: success={success}")
            self.events.emit(
                "CallbackProcessed",
                position_id=position_id,
                callback_id=key,
                action_type=action.action_type,
                signer=signer,
                success=success,
                tx_ref=tx_ref,
            )
            return success

    # ---- execution

    def _run_action(self, position_id: bytes, action: ActionData) -> tuple[bool, Optional[bytes]]:
        try:
            if action.action_type == ActionType.HEDGE.value:
                hedge = self._hedge(
                    position_id, action.token_in, action.token_out, action.amount, action.min_amount_out
                )
                return True, hedge.tx_ref
            result = self._rebalance(position_id, action.action_type, action.amount)
            return result.success, result.tx_ref
        except RebalancerError as exc:
            logger.error(f"Callback action {action.action_type!r} for 0x{position_id.hex()[:12]} failed: {exc}")
            return False, None

    def _hedge(
        self,
        position_id: bytes,
        token_in: Optional[str],
        token_out: Optional[str],
        amount_in: int,
        min_amount_out: int,
    ) -> HedgeResult:
        token_in = normalize_address(token_in, field="token_in")
        token_out = normalize_address(token_out, field="token_out")
        if token_in == token_out:
            raise ValidationError("Tokens must be different")
        if amount_in <= 0:
            raise ValidationError("Amount must be positive")
        if min_amount_out <= 0:
            raise ValidationError("Minimum output must be positive")
        if self._balances.get(token_in, 0) < amount_in:
            raise StateError(f"Insufficient balance of {token_in}")

        amount_out = self.venue.quote(token_in, token_out, amount_in)
        if amount_out < min_amount_out:
            raise SlippageError(amount_out, min_amount_out)

        self.venue.settle(token_in, token_out, amount_in, amount_out)
        self._balances[token_in] -= amount_in
        self._balances[token_out] += amount_out
        self._exposure[position_id] += amount_out
        tx_ref = self._derive_id(["bytes32", "string"], [position_id, ActionType.HEDGE.value])

        logger.info(f"Hedge 0x{position_id.hex()[:12]}: {amount_in} {token_in} -> {amount_out} {token_out}")
        self.events.emit(
            "HedgingTradeExecuted",
            position_id=position_id,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=amount_out,
            tx_ref=tx_ref,
        )
        return HedgeResult(amount_out=amount_out, tx_ref=tx_ref)

    def _rebalance(self, position_id: bytes, action_type: ActionType | str, amount: int) -> RebalanceResult:
        action, strategy = resolve_strategy(action_type)
        if amount <= 0:
            raise ValidationError("Amount must be positive")

        exposure, success = strategy(self._exposure.get(position_id, 0), amount)
        if success:
            self._exposure[position_id] = exposure
        tx_ref = self._derive_id(["bytes32", "string"], [position_id, action.value])

        logger.info(f"{action.value} 0x{position_id.hex()[:12]} amount={amount} success={success}")
        self.events.emit(
            "RebalancingExecuted",
            position_id=position_id,
            action_type=action,
            amount=amount,
            success=success,
            exposure=self.exposure_of(position_id),
            tx_ref=tx_ref,
        )
        return RebalanceResult(success=success, tx_ref=tx_ref)

    def _require_authorized(self, caller: Optional[str]) -> None:
        if not self.is_authorized(caller):
            raise AuthorizationError("Caller not authorized")
