"""Simulated price source."""

import asyncio
import logging
import random
from datetime import datetime
from decimal import Decimal

from goldcast.data.snapshot import ValueSnapshot
from goldcast.data.value_source import ValueSource, ValueSourceError

logger = logging.getLogger(__name__)


class SimValueSource(ValueSource):
    """
    Generates synthetic gold rates for dry runs and tests.
    Produces a random walk of the buy price with a fixed sell spread.
    """

    def __init__(
        self,
        start_price: Decimal = Decimal("1950000"),
        spread: Decimal = Decimal("40000"),
        steps: tuple[int, ...] = (-2000, -1000, 0, 0, 0, 1000, 2000),
        failure_rate: float = 0.0,
        latency: float = 0.0,
        seed: int | None = None,
    ):
        self.current_price = start_price
        self.spread = spread
        self.steps = steps
        self.failure_rate = failure_rate
        self.latency = latency
        self._random = random.Random(seed)
        self.fetch_count = 0

    async def fetch(self, timeout: float) -> ValueSnapshot:
        self.fetch_count += 1
        if self.latency:
            if self.latency > timeout:
                await asyncio.sleep(timeout)
                raise ValueSourceError(f"Timed out after {timeout}s")
            await asyncio.sleep(self.latency)

        if self.failure_rate and self._random.random() < self.failure_rate:
            raise ValueSourceError("Simulated upstream failure")

        self.current_price += Decimal(self._random.choice(self.steps))
        now = datetime.now()
        return ValueSnapshot(
            primary=self.current_price,
            secondary=self.current_price - self.spread,
            observed_at=now,
            source_updated=now.strftime("%Y-%m-%d %H:%M:%S"),
        )
