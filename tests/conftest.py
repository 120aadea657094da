"""Shared test fixtures for pytest.

Provides deterministic accounts, per-domain configs, wired deployments and
helpers for driving the pipeline from tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from rebalancer.config import DestinationConfig, ManagerConfig, OriginConfig, RelayConfig, Settings
from rebalancer.deployment import Deployment, build_deployment
from rebalancer.domains import DestinationHandler, OriginPositionRegistry, ReactiveManager
from rebalancer.storage import InMemoryAnalyticsStore
from rebalancer.types import ActionType
from rebalancer.units import SCALE

ORIGIN_CONTRACT = Web3.to_checksum_address("0x" + "0c" * 20)
DESTINATION_CONTRACT = Web3.to_checksum_address("0x" + "0d" * 20)
TOKEN_A = Web3.to_checksum_address("0x" + "aa" * 20)
TOKEN_B = Web3.to_checksum_address("0x" + "bb" * 20)

GAS_BUDGET = SCALE // 10  # 0.1


@dataclass(frozen=True)
class Accounts:
    admin: LocalAccount
    owner: LocalAccount
    other: LocalAccount
    relay: LocalAccount
    outsider: LocalAccount


@pytest.fixture
def accounts() -> Accounts:
    """Deterministic accounts; `relay` is both the relay identity and the callback signer."""
    return Accounts(
        admin=Account.from_key("0x" + "a1" * 32),
        owner=Account.from_key("0x" + "b2" * 32),
        other=Account.from_key("0x" + "c3" * 32),
        relay=Account.from_key("0x" + "d4" * 32),
        outsider=Account.from_key("0x" + "e5" * 32),
    )


class FixedClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def settings(accounts: Accounts) -> Settings:
    return Settings(
        origin=OriginConfig(admin=accounts.admin.address, contract_ref=ORIGIN_CONTRACT),
        manager=ManagerConfig(
            admin=accounts.admin.address,
            relay_identity=accounts.relay.address,
            destination_contract=DESTINATION_CONTRACT,
            hedge_token_out=TOKEN_B,
        ),
        destination=DestinationConfig(
            admin=accounts.admin.address,
            authorized_callers=(accounts.relay.address,),
        ),
        relay=RelayConfig(identity=accounts.relay.address, signer_key="0x" + "d4" * 32),
    )


@pytest.fixture
def origin(settings: Settings, clock: FixedClock) -> OriginPositionRegistry:
    return OriginPositionRegistry(settings.origin, clock=clock)


@pytest.fixture
def manager(settings: Settings, clock: FixedClock) -> ReactiveManager:
    return ReactiveManager(settings.manager, clock=clock)


@pytest.fixture
def destination(settings: Settings, clock: FixedClock) -> DestinationHandler:
    return DestinationHandler(settings.destination, clock=clock)


@pytest.fixture
def deployment(settings: Settings, clock: FixedClock) -> Deployment:
    return build_deployment(settings, store=InMemoryAnalyticsStore(), clock=clock)


def create_monitored(
    manager: ReactiveManager,
    owner: str,
    *,
    threshold: int,
    action_type: ActionType | str = ActionType.REBALANCE,
    origin_position_id: Optional[bytes] = None,
    origin_token: Optional[str] = TOKEN_A,
    label: str = "eth-usdc-lp",
    gas_budget: int = GAS_BUDGET,
) -> bytes:
    return manager.create_position(
        caller=owner,
        origin_chain_id=1597,
        origin_contract_ref=ORIGIN_CONTRACT,
        origin_token=origin_token,
        label=label,
        threshold=threshold,
        action_type=action_type,
        gas_budget=gas_budget,
        payment=gas_budget,
        origin_position_id=origin_position_id,
    )
