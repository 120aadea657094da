"""Rebalancing strategies keyed by action type.

A strategy maps (current exposure, amount) to (new exposure, success).
`hedge` is not a rebalancing strategy; it goes through the venue.
"""

from __future__ import annotations

from typing import Callable

from rebalancer.errors import ValidationError
from rebalancer.types import ActionType

Strategy = Callable[[int, int], tuple[int, bool]]


def partial_unwind(exposure: int, amount: int) -> tuple[int, bool]:
    """Remove up to `amount`; succeeds only if something was unwound."""
    unwound = min(exposure, amount)
    return exposure - unwound, unwound > 0


def rebalance(exposure: int, amount: int) -> tuple[int, bool]:
    """Reset exposure to `amount`."""
    return amount, True


STRATEGIES: dict[ActionType, Strategy] = {
    ActionType.PARTIAL_UNWIND: partial_unwind,
    ActionType.REBALANCE: rebalance,
}


def resolve_strategy(action_type: ActionType | str) -> tuple[ActionType, Strategy]:
    action = ActionType.parse(action_type)
    strategy = STRATEGIES.get(action)
    if strategy is None:
        raise ValidationError(f"Unsupported rebalancing action: {action.value}")
    return action, strategy
