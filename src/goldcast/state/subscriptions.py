"""Subscription registry."""

from __future__ import annotations

import logging
from collections.abc import Iterable

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """
    Set of recipients that opted in to broadcasts.

    ``all()`` hands out an immutable copy, so a broadcast iterating it is not
    affected by subscribe/unsubscribe commands processed meanwhile.
    """

    def __init__(self, initial: Iterable[str] = ()):
        self._members: set[str] = set(initial)

    def subscribe(self, recipient: str) -> bool:
        """Add recipient. Returns True if newly added, False if already present."""
        if recipient in self._members:
            return False
        self._members.add(recipient)
        logger.info(f"Subscribed {recipient} ({len(self._members)} total)")
        return True

    def unsubscribe(self, recipient: str) -> bool:
        """Remove recipient. Returns True if it was subscribed."""
        if recipient not in self._members:
            return False
        self._members.discard(recipient)
        logger.info(f"Unsubscribed {recipient} ({len(self._members)} total)")
        return True

    def is_subscribed(self, recipient: str) -> bool:
        return recipient in self._members

    def all(self) -> frozenset[str]:
        return frozenset(self._members)

    def __contains__(self, recipient: object) -> bool:
        return recipient in self._members

    def __len__(self) -> int:
        return len(self._members)
