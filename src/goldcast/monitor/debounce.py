"""Debounce Scheduler - Collapses bursts of changes into one broadcast.

Trailing-edge debounce: every qualifying change re-arms a single timer, and
only when the rate has been quiet for the whole window does the latest change
get broadcast. A minimum interval between broadcasts caps frequency even when
the source never settles.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from goldcast.data.snapshot import ChangeEvent

logger = logging.getLogger(__name__)


class DebounceScheduler:
    """
    Holds at most one pending timer.

    Usage:
        scheduler = DebounceScheduler(5.0, 60.0, on_fire=my_callback)
        scheduler.on_change(event)
        ...
        scheduler.mark_broadcast()  # once the broadcast completed
    """

    def __init__(
        self,
        quiet_window: float,
        min_interval: float,
        on_fire: Callable[[ChangeEvent], None],
        clock: Callable[[], float] | None = None,
    ):
        self.quiet_window = quiet_window
        self.min_interval = min_interval
        self.on_fire = on_fire
        self._clock = clock

        self._handle: asyncio.TimerHandle | None = None
        self._pending_event: ChangeEvent | None = None
        self._last_broadcast_at: float | None = None

        self.armed = 0
        self.fired = 0
        self.dropped = 0

    def _now(self) -> float:
        return self._clock() if self._clock else time.monotonic()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def pending_event(self) -> ChangeEvent | None:
        return self._pending_event

    @property
    def last_broadcast_at(self) -> float | None:
        return self._last_broadcast_at

    def on_change(self, event: ChangeEvent) -> None:
        """
        Arm (or re-arm) the timer for ``event``.

        A repeat poll with no movement since the last observation keeps the
        running timer; otherwise a steady value would postpone it forever.
        """
        if self._handle is not None and event.since_last_observed.is_zero():
            self._pending_event = event
            return

        self.cancel()
        self._pending_event = event
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.quiet_window, self._fire)
        self.armed += 1
        logger.debug(
            f"Debounce armed for {self.quiet_window}s "
            f"(buy={event.snapshot.primary} sell={event.snapshot.secondary})"
        )

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._pending_event = None

    def mark_broadcast(self, at: float | None = None) -> None:
        """Record a completed broadcast for the minimum-interval guard."""
        self._last_broadcast_at = self._now() if at is None else at

    def _fire(self) -> None:
        event = self._pending_event
        self._handle = None
        self._pending_event = None
        if event is None:
            return

        if self._last_broadcast_at is not None:
            elapsed = self._now() - self._last_broadcast_at
            if elapsed < self.min_interval:
                self.dropped += 1
                logger.info(
                    f"Debounced broadcast dropped: {elapsed:.1f}s since last broadcast "
                    f"< {self.min_interval}s"
                )
                return

        self.fired += 1
        try:
            self.on_fire(event)
        except Exception as e:
            logger.error(f"Debounce callback failed: {e}", exc_info=True)
