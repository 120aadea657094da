from __future__ import annotations

from typing import Protocol


class ExecutionVenue(Protocol):
    """Where the destination handler routes hedging swaps."""

    def quote(self, token_in: str, token_out: str, amount_in: int) -> int:
        """Return the `token_out` amount `amount_in` of `token_in` would receive. No side effects.

        Implementations may use blocking I/O; the destination handler calls
        this while holding its lock.
        """

    def settle(self, token_in: str, token_out: str, amount_in: int, amount_out: int) -> None:
        """Record a swap the handler accepted at the quoted `amount_out`."""
