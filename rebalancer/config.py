"""Configuration for the three authority domains and the relay.

Each domain gets its own frozen config so that no administrative setting
is shared by reference across domains. `Settings.from_env()` builds all of
them from `REBALANCER_*` environment variables.

Private keys and database URLs come from the environment. Do not log them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from rebalancer.types import UnknownEventPolicy
from rebalancer.units import ZERO_ADDRESS

REACTIVE_MAINNET_CHAIN_ID = 1597
REACTIVE_TESTNET_CHAIN_ID = 1596

DEFAULT_MAX_SLIPPAGE_BPS = 500
CALLBACK_MAX_AGE_SECONDS = 300


@dataclass(frozen=True)
class OriginConfig:
    """Origin registry settings."""

    admin: str
    contract_ref: str = ZERO_ADDRESS
    chain_id: int = REACTIVE_MAINNET_CHAIN_ID


@dataclass(frozen=True)
class ManagerConfig:
    """Reactive manager settings."""

    admin: str
    relay_identity: str  # the only caller allowed into react()
    destination_chain_id: int = REACTIVE_MAINNET_CHAIN_ID
    destination_contract: str = ZERO_ADDRESS
    hedge_token_out: str = ZERO_ADDRESS
    max_slippage_bps: int = DEFAULT_MAX_SLIPPAGE_BPS
    unknown_event_policy: UnknownEventPolicy = UnknownEventPolicy.IGNORE


@dataclass(frozen=True)
class DestinationConfig:
    """Destination handler settings."""

    admin: str
    chain_id: int = REACTIVE_MAINNET_CHAIN_ID
    authorized_callers: tuple[str, ...] = ()


@dataclass(frozen=True)
class RelayConfig:
    """In-process relay settings."""

    identity: str
    signer_key: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class Settings:
    origin: OriginConfig
    manager: ManagerConfig
    destination: DestinationConfig
    relay: RelayConfig
    database_url: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_env(cls, env: Optional[dict[str, str]] = None) -> "Settings":
        """Build settings from environment variables.

        Required: REBALANCER_ORIGIN_ADMIN, REBALANCER_MANAGER_ADMIN,
        REBALANCER_DESTINATION_ADMIN, REBALANCER_RELAY_IDENTITY.
        """
        source = os.environ if env is None else env

        def required(name: str) -> str:
            value = source.get(name)
            if not value:
                raise RuntimeError(f"{name} environment variable is required")
            return value

        def optional_int(name: str, default: int) -> int:
            value = source.get(name)
            return int(value) if value else default

        relay_identity = required("REBALANCER_RELAY_IDENTITY")
        destination_chain_id = optional_int("REBALANCER_DESTINATION_CHAIN_ID", REACTIVE_MAINNET_CHAIN_ID)
        callers = tuple(
            c.strip() for c in source.get("REBALANCER_AUTHORIZED_CALLERS", "").split(",") if c.strip()
        )

        return cls(
            origin=OriginConfig(
                admin=required("REBALANCER_ORIGIN_ADMIN"),
                contract_ref=source.get("REBALANCER_ORIGIN_CONTRACT", ZERO_ADDRESS),
                chain_id=optional_int("REBALANCER_ORIGIN_CHAIN_ID", REACTIVE_MAINNET_CHAIN_ID),
            ),
            manager=ManagerConfig(
                admin=required("REBALANCER_MANAGER_ADMIN"),
                relay_identity=relay_identity,
                destination_chain_id=destination_chain_id,
                destination_contract=source.get("REBALANCER_DESTINATION_CONTRACT", ZERO_ADDRESS),
                hedge_token_out=source.get("REBALANCER_HEDGE_TOKEN_OUT", ZERO_ADDRESS),
                max_slippage_bps=optional_int("REBALANCER_MAX_SLIPPAGE_BPS", DEFAULT_MAX_SLIPPAGE_BPS),
                unknown_event_policy=UnknownEventPolicy(
                    source.get("REBALANCER_UNKNOWN_EVENT_POLICY", UnknownEventPolicy.IGNORE.value)
                ),
            ),
            destination=DestinationConfig(
                admin=required("REBALANCER_DESTINATION_ADMIN"),
                chain_id=destination_chain_id,
                authorized_callers=callers,
            ),
            relay=RelayConfig(
                identity=relay_identity,
                signer_key=source.get("REBALANCER_RELAY_SIGNER_KEY") or None,
            ),
            database_url=source.get("DATABASE_URL") or None,
        )
