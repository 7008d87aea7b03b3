"""Treasury gold rate source (HTTP JSON API)."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

import aiohttp

from goldcast.constants import DEFAULT_TREASURY_URL
from goldcast.data.snapshot import ValueSnapshot
from goldcast.data.value_source import ValueSource, ValueSourceError

logger = logging.getLogger(__name__)


def parse_rate_payload(payload: Any, observed_at: datetime) -> ValueSnapshot:
    """
    Build a snapshot from the Treasury response body.

    Expected shape: ``{"data": {"buying_rate": .., "selling_rate": .., "updated_at": ..}}``
    """
    if not isinstance(payload, dict):
        raise ValueSourceError(f"Unexpected payload type: {type(payload).__name__}")

    data = payload.get("data") or {}
    try:
        buy = Decimal(str(data["buying_rate"]))
        sell = Decimal(str(data["selling_rate"]))
    except (KeyError, TypeError, InvalidOperation) as e:
        raise ValueSourceError(f"Malformed rate payload: {e!r}") from e

    if not buy.is_finite() or not sell.is_finite():
        raise ValueSourceError(f"Non-finite rate: buy={buy} sell={sell}")

    return ValueSnapshot(
        primary=buy,
        secondary=sell,
        observed_at=observed_at,
        source_updated=str(data.get("updated_at") or ""),
    )


class TreasuryRateSource(ValueSource):
    """
    Polls the Treasury gold rate endpoint.

    One ``aiohttp.ClientSession`` with a keep-alive connector is reused across
    polls so repeated fetches skip the TCP/TLS handshake.
    """

    def __init__(self, url: str = DEFAULT_TREASURY_URL):
        self.url = url
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(keepalive_timeout=30)
            self._session = aiohttp.ClientSession(
                connector=connector, headers={"accept": "application/json"}
            )
        return self._session

    async def fetch(self, timeout: float) -> ValueSnapshot:
        session = self._get_session()
        try:
            async with session.post(
                self.url, timeout=aiohttp.ClientTimeout(total=timeout)
            ) as response:
                if response.status >= 400:
                    raise ValueSourceError(f"HTTP {response.status}")
                payload = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise ValueSourceError(f"Timed out after {timeout}s") from e
        except aiohttp.ClientError as e:
            raise ValueSourceError(f"Request failed: {e}") from e
        except ValueError as e:
            raise ValueSourceError(f"Invalid JSON: {e}") from e

        return parse_rate_payload(payload, datetime.now())

    async def warmup(self) -> None:
        """Open the keep-alive connection with one throwaway request."""
        try:
            snapshot = await self.fetch(timeout=5.0)
            logger.info(f"Treasury warm-up ok: buy={snapshot.primary} sell={snapshot.secondary}")
        except ValueSourceError as e:
            logger.warning(f"Treasury warm-up failed: {e}")

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
