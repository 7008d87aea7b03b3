"""Base price source interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from goldcast.data.snapshot import ValueSnapshot


class ValueSourceError(Exception):
    """Fetching a snapshot failed or timed out."""


class ValueSource(ABC):
    """Abstract supplier of the latest price snapshot."""

    @abstractmethod
    async def fetch(self, timeout: float) -> ValueSnapshot:
        """
        Fetch the latest snapshot.

        Raises:
            ValueSourceError: On transport errors, bad payloads or timeout.
        """
        pass

    async def warmup(self) -> None:
        """Prime connections before the first poll."""
        pass

    async def close(self) -> None:
        """Release any held connections."""
        pass
