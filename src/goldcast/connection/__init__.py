"""Session connection lifecycle."""

from goldcast.connection.manager import (
    ConnectionManager,
    LoggedOutError,
    ReconnectExhaustedError,
    backoff_delay,
)

__all__ = [
    "ConnectionManager",
    "LoggedOutError",
    "ReconnectExhaustedError",
    "backoff_delay",
]
