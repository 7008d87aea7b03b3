"""Dispatcher - Renders the rate and fans it out to subscribers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from goldcast.config_loader import DispatchConfig
from goldcast.data.snapshot import ValueSnapshot
from goldcast.data.value_source import ValueSource
from goldcast.dispatch.history import BroadcastHistory, BroadcastRecord, RecipientOutcome
from goldcast.dispatch.rate_limiter import RateLimiter
from goldcast.messages import FETCH_FAILED_TEXT, render_rate
from goldcast.retry import RetryPolicy, fetch_with_retry
from goldcast.state.subscriptions import SubscriptionRegistry
from goldcast.transport.base import SendError, SessionTransport

logger = logging.getLogger(__name__)


@dataclass
class DispatchStats:
    """Operator-facing delivery counters."""

    broadcasts_completed: int = 0
    broadcasts_dropped: int = 0
    sends_ok: int = 0
    sends_failed: int = 0
    replies_ok: int = 0
    replies_failed: int = 0

    def summary(self) -> str:
        return (
            f"broadcasts={self.broadcasts_completed} (dropped {self.broadcasts_dropped}) | "
            f"sends ok={self.sends_ok} failed={self.sends_failed} | "
            f"replies ok={self.replies_ok} failed={self.replies_failed}"
        )


class Dispatcher:
    """
    Sends rate messages.

    Only one broadcast runs at a time; a request arriving meanwhile is
    dropped, since the next debounce cycle will carry a newer value anyway.
    Delivery is best-effort: a failing recipient is recorded and skipped.
    """

    def __init__(
        self,
        transport: SessionTransport,
        registry: SubscriptionRegistry,
        limiter: RateLimiter,
        source: ValueSource,
        config: DispatchConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        render: Callable[[ValueSnapshot], str] = render_rate,
    ):
        self.transport = transport
        self.registry = registry
        self.limiter = limiter
        self.source = source
        self.config = config or DispatchConfig()
        self.retry_policy = retry_policy or RetryPolicy()
        self.render = render

        self.history = BroadcastHistory(self.config.history_size)
        self.stats = DispatchStats()
        self.last_completed_at: datetime | None = None

        self._in_flight = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def broadcast(self, baseline: ValueSnapshot) -> BroadcastRecord | None:
        """
        Broadcast the current rate to every subscriber.

        Args:
            baseline: Snapshot that triggered the broadcast; rendered when a
                fresh fetch fails

        Returns:
            The completed record, or None if another broadcast was in flight
        """
        if self._in_flight:
            self.stats.broadcasts_dropped += 1
            logger.info("Broadcast already in flight, dropping request")
            return None

        self._in_flight = True
        try:
            record = BroadcastRecord(baseline=baseline, fired_at=datetime.now())

            fresh = await fetch_with_retry(self.source, self.retry_policy, purpose="broadcast")
            text = self.render(fresh or baseline)

            recipients = sorted(self.registry.all())
            batch_size = self.config.batch_size
            for index, start in enumerate(range(0, len(recipients), batch_size)):
                wait = self.limiter.global_remaining()
                if index > 0:
                    wait = max(wait, self.config.batch_delay_seconds)
                if wait > 0:
                    await asyncio.sleep(wait)

                batch = recipients[start : start + batch_size]
                outcomes = await asyncio.gather(*(self._push(r, text) for r in batch))
                record.recipients.extend(outcomes)
                self.limiter.record_send()

            record.completed_at = datetime.now()
            self.history.append(record)
            self.last_completed_at = record.completed_at
            self.stats.broadcasts_completed += 1

            logger.info(
                f"Broadcast done: buy={baseline.primary} sell={baseline.secondary} "
                f"sent={record.sent} failed={record.failed}"
            )
            return record
        finally:
            self._in_flight = False

    async def _push(self, recipient: str, text: str) -> RecipientOutcome:
        if self.config.apply_cooldown_to_broadcast:
            if not self.limiter.recipient_allowed(recipient):
                return RecipientOutcome(recipient, ok=False, error="cooldown")
            self.limiter.record_send(recipient)

        outcome = await self.send_one(recipient, text)
        if outcome.ok:
            self.stats.sends_ok += 1
        else:
            self.stats.sends_failed += 1
        return outcome

    async def send_one(self, recipient: str, text: str) -> RecipientOutcome:
        """Send one message with a timeout; failures become outcomes, never raise."""
        try:
            await asyncio.wait_for(
                self.transport.send(recipient, text), timeout=self.config.send_timeout_seconds
            )
            return RecipientOutcome(recipient, ok=True)
        except asyncio.TimeoutError:
            error = f"timeout after {self.config.send_timeout_seconds}s"
        except SendError as e:
            error = str(e) or "send failed"
        except Exception as e:
            error = f"{type(e).__name__}: {e}"

        logger.warning(f"Send to {recipient} failed: {error}")
        return RecipientOutcome(recipient, ok=False, error=error)

    async def reply(self, recipient: str, text: str | None = None) -> RecipientOutcome:
        """
        Answer one recipient.

        Args:
            recipient: Chat id to answer
            text: Fixed reply; when None the current rate is fetched and
                rendered, or a "try again" message is sent if that fails
        """
        if text is None:
            snapshot = await fetch_with_retry(self.source, self.retry_policy, purpose="query")
            text = self.render(snapshot) if snapshot else FETCH_FAILED_TEXT

        outcome = await self.send_one(recipient, text)
        if outcome.ok:
            self.stats.replies_ok += 1
        else:
            self.stats.replies_failed += 1
        return outcome

    def spawn_reply(self, recipient: str, text: str | None = None) -> asyncio.Task:
        """Run ``reply`` in the background so the caller's loop is not blocked."""
        task = asyncio.create_task(self.reply(recipient, text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for background replies to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
