"""In-memory bot state: subscribers and seen inbound messages."""

from goldcast.state.dedup import DedupGuard
from goldcast.state.subscriptions import SubscriptionRegistry

__all__ = ["DedupGuard", "SubscriptionRegistry"]
