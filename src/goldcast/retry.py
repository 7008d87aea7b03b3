"""Retry policy shared by every price fetch call site."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from goldcast.data.snapshot import ValueSnapshot
from goldcast.data.value_source import ValueSource, ValueSourceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to call a flaky source."""

    max_attempts: int = 2
    delay_seconds: float = 0.0
    timeout_seconds: float = 2.0


async def fetch_with_retry(
    source: ValueSource, policy: RetryPolicy, *, purpose: str = "poll"
) -> ValueSnapshot | None:
    """
    Fetch a snapshot, retrying on failure.

    Returns:
        The snapshot, or None once every attempt failed. Failures are logged,
        never raised.
    """
    last_error: Exception | None = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await source.fetch(policy.timeout_seconds)
        except ValueSourceError as e:
            last_error = e
            logger.debug(f"Fetch attempt {attempt}/{policy.max_attempts} for {purpose} failed: {e}")
            if attempt < policy.max_attempts and policy.delay_seconds:
                await asyncio.sleep(policy.delay_seconds)

    logger.warning(f"Fetch for {purpose} failed after {policy.max_attempts} attempts: {last_error}")
    return None
