"""Bounded guard against re-processing inbound messages."""

from __future__ import annotations


class DedupGuard:
    """
    Remembers recently handled message ids.

    Backed by an insertion-ordered dict. When it grows past ``capacity`` the
    oldest half is evicted in one pass, so memory stays bounded and inserts
    are amortized O(1). Very old ids may be forgotten; a new id is never
    reported as seen.
    """

    def __init__(self, capacity: int = 1000):
        if capacity < 2:
            raise ValueError(f"capacity must be at least 2, got: {capacity}")
        self.capacity = capacity
        self._ids: dict[str, None] = {}
        self.evictions = 0

    def seen(self, msg_id: str) -> bool:
        return msg_id in self._ids

    def record(self, msg_id: str) -> None:
        if msg_id in self._ids:
            return
        self._ids[msg_id] = None
        if len(self._ids) > self.capacity:
            self._evict()

    def check_and_record(self, msg_id: str) -> bool:
        """Record ``msg_id``; return True if it had already been seen."""
        if self.seen(msg_id):
            return True
        self.record(msg_id)
        return False

    def _evict(self) -> None:
        drop = len(self._ids) // 2
        for key in list(self._ids)[:drop]:
            del self._ids[key]
        self.evictions += 1

    def __len__(self) -> int:
        return len(self._ids)
