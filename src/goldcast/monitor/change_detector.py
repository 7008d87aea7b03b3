"""Change Detector - Classifies each poll against the broadcast baseline."""

from __future__ import annotations

import logging
from decimal import Decimal

from goldcast.data.snapshot import ChangeEvent, Delta, ValueSnapshot

logger = logging.getLogger(__name__)


class ChangeDetector:
    """
    Compares polls against two baselines.

    - last observed: the previous poll, used for trend logging
    - last broadcast: the value subscribers last heard about; only moves of
      at least ``min_change`` on either side against it qualify

    The first observation seeds both baselines and never emits.
    """

    def __init__(self, min_change: Decimal = Decimal("1")):
        self.min_change = Decimal(min_change)
        self._last_observed: ValueSnapshot | None = None
        self._last_broadcast: ValueSnapshot | None = None

    @property
    def last_observed(self) -> ValueSnapshot | None:
        return self._last_observed

    @property
    def last_broadcast(self) -> ValueSnapshot | None:
        return self._last_broadcast

    def observe(self, snapshot: ValueSnapshot) -> ChangeEvent | None:
        """
        Process a poll result.

        Args:
            snapshot: Freshly fetched price pair

        Returns:
            ChangeEvent if the move against the broadcast baseline qualifies,
            None otherwise
        """
        if self._last_observed is None or self._last_broadcast is None:
            self._last_observed = snapshot
            self._last_broadcast = snapshot
            logger.info(f"Baseline seeded: buy={snapshot.primary} sell={snapshot.secondary}")
            return None

        since_observed = snapshot.delta_from(self._last_observed)
        since_broadcast = snapshot.delta_from(self._last_broadcast)
        self._last_observed = snapshot

        if not since_observed.is_zero():
            logger.debug(
                f"Rate moved buy {since_observed.primary:+} sell {since_observed.secondary:+}"
            )

        if not self._significant(since_broadcast):
            return None

        return ChangeEvent(
            snapshot=snapshot,
            since_last_observed=since_observed,
            since_last_broadcast=since_broadcast,
        )

    def commit_broadcast(self, snapshot: ValueSnapshot) -> None:
        """Move the broadcast baseline. Called when a broadcast is decided."""
        self._last_broadcast = snapshot

    def qualifies(self, snapshot: ValueSnapshot) -> bool:
        """Whether ``snapshot`` still differs enough from the current broadcast baseline."""
        if self._last_broadcast is None:
            return False
        return self._significant(snapshot.delta_from(self._last_broadcast))

    def _significant(self, delta: Delta) -> bool:
        # no movement never qualifies, even with a zero threshold
        return not delta.is_zero() and not delta.below(self.min_change)

    def reset(self) -> None:
        self._last_observed = None
        self._last_broadcast = None
