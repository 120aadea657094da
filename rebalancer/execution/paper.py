from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from rebalancer.units import BPS

DEFAULT_HAIRCUT_BPS = 500


@dataclass(frozen=True)
class PaperFill:
    """One simulated swap."""

    token_in: str
    token_out: str
    amount_in: int
    amount_out: int
    filled_at: datetime


class PaperVenue:
    """Simulated venue that returns a fixed fraction of the input amount.

    With the default haircut of 500 bps every swap returns 95% of
    `amount_in`. Nothing leaves the process.
    """

    def __init__(self, *, haircut_bps: int = DEFAULT_HAIRCUT_BPS) -> None:
        """Initialize the paper venue.

        Args:
            haircut_bps: Output reduction in basis points, 0 <= haircut < 10000
        """
        if not 0 <= haircut_bps < BPS:
            raise ValueError("haircut_bps must be in [0, 10000)")
        self._haircut_bps = haircut_bps
        self._fills: list[PaperFill] = []

    @property
    def haircut_bps(self) -> int:
        return self._haircut_bps

    def quote(self, token_in: str, token_out: str, amount_in: int) -> int:
        """Price a swap at the fixed haircut without recording it.

        Args:
            token_in: Token sold
            token_out: Token bought
            amount_in: Amount sold, smallest unit

        Returns:
            Amount of `token_out` the swap would return

        Raises:
            ValueError: If amount_in is not positive
        """
        if amount_in <= 0:
            raise ValueError("Amount must be positive")

        return amount_in * (BPS - self._haircut_bps) // BPS

    def settle(self, token_in: str, token_out: str, amount_in: int, amount_out: int) -> None:
        """Record an accepted swap as a fill."""
        self._fills.append(
            PaperFill(
                token_in=token_in,
                token_out=token_out,
                amount_in=amount_in,
                amount_out=amount_out,
                filled_at=datetime.now(timezone.utc),
            )
        )

    def get_fills(self, token_in: Optional[str] = None) -> list[PaperFill]:
        """Return recorded fills, optionally only those selling `token_in`."""
        if token_in is None:
            return list(self._fills)
        return [fill for fill in self._fills if fill.token_in == token_in]
