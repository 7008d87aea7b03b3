"""Price snapshot data structures."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True)
class ValueSnapshot:
    """Buy/sell price pair as observed at one poll."""

    primary: Decimal  # buy
    secondary: Decimal  # sell
    observed_at: datetime
    source_updated: str = ""

    @property
    def spread(self) -> Decimal:
        return abs(self.primary - self.secondary)

    def delta_from(self, other: ValueSnapshot) -> Delta:
        """Component-wise difference ``self - other``."""
        return Delta(
            primary=self.primary - other.primary,
            secondary=self.secondary - other.secondary,
        )

    def same_values(self, other: ValueSnapshot) -> bool:
        return self.primary == other.primary and self.secondary == other.secondary


@dataclass(frozen=True)
class Delta:
    """Signed change of both price components."""

    primary: Decimal
    secondary: Decimal

    def is_zero(self) -> bool:
        return self.primary == 0 and self.secondary == 0

    def below(self, threshold: Decimal) -> bool:
        """True when both components move strictly less than ``threshold``."""
        return abs(self.primary) < threshold and abs(self.secondary) < threshold


@dataclass(frozen=True)
class ChangeEvent:
    """A qualifying change, consumed by the debounce scheduler."""

    snapshot: ValueSnapshot
    since_last_observed: Delta
    since_last_broadcast: Delta
