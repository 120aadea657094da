#!/usr/bin/env python
"""Run one origin -> manager -> destination round trip in process.

Creates an origin position, monitors it, moves its price and pumps the
relay, then prints what each domain recorded.

Usage:
    python scripts/simulate_pipeline.py --new-price 2.5 --threshold 0.1 --action hedge
"""

import argparse
import json
import logging
import sys
from decimal import Decimal
from pathlib import Path

from eth_account import Account
from web3 import Web3

# Add project root to path
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from rebalancer.config import (  # noqa: E402
    DestinationConfig,
    ManagerConfig,
    OriginConfig,
    RelayConfig,
    Settings,
)
from rebalancer.deployment import build_deployment  # noqa: E402
from rebalancer.types import ActionType  # noqa: E402
from rebalancer.units import SCALE, to_fixed  # noqa: E402


def _account(role: str):
    """Deterministic demo account per role."""
    return Account.from_key(Web3.keccak(text=f"rebalancer-demo-{role}"))


def main() -> int:
    parser = argparse.ArgumentParser(description="Simulate one rebalancing round trip")
    parser.add_argument("--amount-a", type=int, default=1000, help="Asset A amount (whole units)")
    parser.add_argument("--amount-b", type=int, default=2000, help="Asset B amount (whole units)")
    parser.add_argument("--new-price", default="2.5", help="New origin price (default: 2.5)")
    parser.add_argument("--threshold", default="0.1", help="Relative change threshold (default: 0.1)")
    parser.add_argument(
        "--action",
        choices=[a.value for a in ActionType],
        default=ActionType.HEDGE.value,
        help="Action requested on breach",
    )
    parser.add_argument("--json", action="store_true", help="Print the event logs as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    admin = _account("admin")
    owner = _account("owner")
    relay = _account("relay")
    origin_contract = _account("origin-contract").address
    destination_contract = _account("destination-contract").address
    token_a = _account("token-a").address
    token_b = _account("token-b").address

    settings = Settings(
        origin=OriginConfig(admin=admin.address, contract_ref=origin_contract),
        manager=ManagerConfig(
            admin=admin.address,
            relay_identity=relay.address,
            destination_contract=destination_contract,
            hedge_token_out=token_b,
        ),
        destination=DestinationConfig(admin=admin.address, authorized_callers=(relay.address,)),
        relay=RelayConfig(identity=relay.address, signer_key="0x" + bytes(relay.key).hex()),
    )
    deployment = build_deployment(settings)

    origin_position = deployment.origin.create_position(
        owner.address, token_a, token_b, args.amount_a * SCALE, args.amount_b * SCALE
    )
    monitored = deployment.manager.create_position(
        caller=owner.address,
        origin_chain_id=settings.origin.chain_id,
        origin_contract_ref=origin_contract,
        origin_token=token_a,
        label="demo",
        threshold=to_fixed(args.threshold),
        action_type=args.action,
        gas_budget=10**17,
        payment=10**17,
        origin_position_id=origin_position,
    )
    deployment.destination.deposit(token_a, args.amount_a * SCALE, caller=admin.address)
    deployment.relay.pump()

    deployment.origin.update_price(origin_position, to_fixed(Decimal(args.new_price)), caller=admin.address)
    deployment.relay.pump()

    counters = deployment.manager.counters.snapshot()
    print(f"Monitored position: 0x{monitored.hex()}")
    print(f"Reactive actions:   {counters.total_reactive_actions}")
    print(f"Gas accounted:      {counters.total_gas_used}")
    print(f"Callbacks:          {len(deployment.destination.processed_callbacks)}")
    print(f"Exposure:           {deployment.destination.exposure_of(monitored)}")
    for failure in deployment.relay.failures:
        print(f"Delivery failure:   {failure.kind} {failure.error}")

    if args.json:
        print(
            json.dumps(
                {
                    "origin": deployment.origin.events.to_json_list(),
                    "manager": deployment.manager.events.to_json_list(),
                    "destination": deployment.destination.events.to_json_list(),
                },
                indent=2,
            )
        )
    return 0 if not deployment.relay.failures else 1


if __name__ == "__main__":
    sys.exit(main())
