"""Fan-out of rate messages to chat recipients."""

from goldcast.dispatch.dispatcher import Dispatcher, DispatchStats
from goldcast.dispatch.history import BroadcastHistory, BroadcastRecord, RecipientOutcome
from goldcast.dispatch.rate_limiter import RateLimiter

__all__ = [
    "BroadcastHistory",
    "BroadcastRecord",
    "Dispatcher",
    "DispatchStats",
    "RateLimiter",
    "RecipientOutcome",
]
