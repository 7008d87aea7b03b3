"""Per-recipient cooldown plus a global send throttle."""

from __future__ import annotations

import time
from collections.abc import Callable


class RateLimiter:
    """
    Two gates, both must pass:

    - per-recipient cooldown: time since that recipient's last send
    - global floor: time since any send at all (much shorter)

    ``allow`` only reads; the clocks move on ``record_send``. Entries whose
    cooldown has passed carry no information and are pruned every
    ``prune_every`` recorded sends.
    """

    def __init__(
        self,
        cooldown_seconds: float,
        global_floor_seconds: float,
        clock: Callable[[], float] | None = None,
        prune_every: int = 256,
    ) -> None:
        self.cooldown_seconds = cooldown_seconds
        self.global_floor_seconds = global_floor_seconds
        self._clock = clock
        self._last_send: dict[str, float] = {}
        self._last_global_send: float | None = None
        self.prune_every = prune_every
        self._recorded = 0

    def __len__(self) -> int:
        return len(self._last_send)

    def _now(self) -> float:
        return self._clock() if self._clock else time.monotonic()

    def allow(self, recipient: str) -> bool:
        return self.recipient_allowed(recipient) and self.global_remaining() <= 0

    def recipient_allowed(self, recipient: str) -> bool:
        last = self._last_send.get(recipient)
        if last is None:
            return True
        return self._now() - last >= self.cooldown_seconds

    def global_remaining(self) -> float:
        """Seconds until the global floor has passed (0 when it already has)."""
        if self._last_global_send is None:
            return 0.0
        return max(0.0, self.global_floor_seconds - (self._now() - self._last_global_send))

    def record_send(self, recipient: str | None = None) -> None:
        now = self._now()
        if recipient is not None:
            self._last_send[recipient] = now
            self._recorded += 1
            if self._recorded >= self.prune_every:
                self.prune()
        self._last_global_send = now

    def prune(self) -> int:
        """Drop recipients whose cooldown has expired. Returns how many went."""
        self._recorded = 0
        now = self._now()
        expired = [r for r, t in self._last_send.items() if now - t >= self.cooldown_seconds]
        for recipient in expired:
            del self._last_send[recipient]
        return len(expired)

    def forget(self, recipient: str) -> None:
        self._last_send.pop(recipient, None)

    def reset(self) -> None:
        self._last_send.clear()
        self._last_global_send = None
        self._recorded = 0
