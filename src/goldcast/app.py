"""goldcast Main Application."""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from goldcast.commands.router import CommandRouter
from goldcast.config_loader import AppConfig, load_config
from goldcast.connection.manager import ConnectionManager, ReconnectDue, WarmupElapsed
from goldcast.constants import APP_NAME, LOG_FORMAT, Command, ConnectionState
from goldcast.data.snapshot import ChangeEvent, ValueSnapshot
from goldcast.data.value_source import ValueSource
from goldcast.dispatch.dispatcher import Dispatcher
from goldcast.dispatch.history import BroadcastRecord
from goldcast.dispatch.rate_limiter import RateLimiter
from goldcast.messages import HELP_TEXT, SUBSCRIBED_TEXT, UNSUBSCRIBED_TEXT
from goldcast.monitor.change_detector import ChangeDetector
from goldcast.monitor.debounce import DebounceScheduler
from goldcast.retry import RetryPolicy, fetch_with_retry
from goldcast.state.dedup import DedupGuard
from goldcast.state.subscriptions import SubscriptionRegistry
from goldcast.transport.base import InboundMessage, SessionTransport, TransportEvent
from goldcast.transport.registry import get_transport, get_value_source

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollResult:
    snapshot: ValueSnapshot


@dataclass(frozen=True)
class DebounceFired:
    event: ChangeEvent


@dataclass(frozen=True)
class BroadcastCompleted:
    record: BroadcastRecord | None


class GoldcastApp:
    """
    Main application orchestrator.

    Every state change happens in ``_process``, fed by one queue that merges
    poll results, debounce firings, inbound messages, connection events and
    broadcast completions. Network I/O (fetches, fan-out) runs in separate
    tasks that report back through the same queue.
    """

    def __init__(
        self,
        config_path: str | Path = "config/config.yaml",
        config: AppConfig | None = None,
        transport: SessionTransport | None = None,
        source: ValueSource | None = None,
        dry_run: bool = False,
        setup_logging: bool = True,
    ):
        self.config_path = Path(config_path)
        self.config = config
        self._dry_run_override = dry_run
        self._setup_logging_enabled = setup_logging

        # Components
        self.transport = transport
        self.source = source
        self.retry_policy: RetryPolicy | None = None
        self.registry: SubscriptionRegistry | None = None
        self.dedup: DedupGuard | None = None
        self.limiter: RateLimiter | None = None
        self.detector: ChangeDetector | None = None
        self.scheduler: DebounceScheduler | None = None
        self.dispatcher: Dispatcher | None = None
        self.router: CommandRouter | None = None
        self.connection: ConnectionManager | None = None

        self._queue: asyncio.Queue = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []
        self._signals: list[signal.Signals] = []
        self._broadcast_task: asyncio.Task | None = None
        self._initialized = False
        self._shutdown_event = asyncio.Event()

        self.last_qr: str = ""
        self.broadcasts_started = 0
        self.broadcasts_skipped = 0
        self.exit_reason: str | None = None
        self.fatal_error: Exception | None = None

    def _setup_logging(self) -> None:
        level = self.config.environment.log_level.value if self.config else "INFO"
        logging.basicConfig(level=level, format=LOG_FORMAT)

    async def initialize(self) -> None:
        """Load config and initialize components."""
        if self.config is None:
            self.config = load_config(self.config_path.absolute())

        if self._setup_logging_enabled:
            self._setup_logging()
        logger.info(f"Initializing {APP_NAME}...")

        if self._dry_run_override:
            self.config.environment.dry_run = True
            logger.info("Dry run mode enabled via CLI")

        cfg = self.config
        if cfg.is_dry_run and self.transport is None:
            cfg.transport.kind = "sim"

        self.transport = self.transport or get_transport(cfg)
        self.source = self.source or get_value_source(cfg)
        self.retry_policy = RetryPolicy(
            max_attempts=cfg.source.retry_attempts,
            timeout_seconds=cfg.source.timeout_seconds,
        )

        self.registry = SubscriptionRegistry(cfg.subscribers)
        self.dedup = DedupGuard(cfg.dedup.capacity)
        self.limiter = RateLimiter(
            cfg.rate_limit.cooldown_seconds, cfg.rate_limit.global_floor_seconds
        )
        self.detector = ChangeDetector(cfg.monitor.min_change)
        self.scheduler = DebounceScheduler(
            quiet_window=cfg.monitor.debounce_seconds,
            min_interval=cfg.monitor.min_broadcast_interval_seconds,
            on_fire=lambda event: self.post(DebounceFired(event)),
        )
        self.dispatcher = Dispatcher(
            self.transport,
            self.registry,
            self.limiter,
            self.source,
            config=cfg.dispatch,
            retry_policy=self.retry_policy,
        )
        self.router = CommandRouter(cfg.commands)
        self.connection = ConnectionManager(
            self.transport,
            cfg.connection,
            logged_out_reason=cfg.transport.logged_out_reason,
            post=self.post,
            on_state_change=self._on_state_change,
            on_qr=self._on_qr,
            on_fatal=self._on_fatal,
        )

        # Wire transport: callbacks only enqueue
        self.transport.add_event_callback(self.post)
        self.transport.add_message_callback(self.post)

        self._initialized = True
        logger.info(f"Initialized with {len(self.registry)} configured subscribers")

    def post(self, event: Any) -> None:
        """Enqueue an event for the single-writer loop. Safe to call from callbacks."""
        self._queue.put_nowait(event)

    async def run(self) -> str | None:
        """
        Run until shutdown.

        Returns:
            Why the app stopped on its own (logged out, reconnects exhausted),
            None after a requested shutdown
        """
        if not self._initialized:
            await self.initialize()

        logger.info("Starting run loop...")

        loop = asyncio.get_running_loop()
        try:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self._handle_signal)
                self._signals.append(sig)
        except (NotImplementedError, RuntimeError):
            logger.warning("Signal handlers not supported in this environment. Use Ctrl+C to stop.")

        if self.config.source.warmup:
            await self.source.warmup()

        self._tasks.append(asyncio.create_task(self._consume()))
        await self.connection.start()
        self._tasks.append(asyncio.create_task(self._poll_loop()))
        if self.config.connection.keepalive_interval_seconds > 0:
            self._tasks.append(asyncio.create_task(self._keepalive_loop()))

        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self._shutdown()

        return self.exit_reason

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def _shutdown(self) -> None:
        logger.info("Shutting down...")
        loop = asyncio.get_running_loop()
        for sig in self._signals:
            loop.remove_signal_handler(sig)
        self._signals.clear()
        self.connection.stop()
        self.scheduler.cancel()

        pending = [t for t in self._tasks if not t.done()]
        if self._broadcast_task and not self._broadcast_task.done():
            pending.append(self._broadcast_task)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()

        await self.dispatcher.drain()
        await self.transport.disconnect()
        await self.source.close()

        logger.info(f"Stats: {self.dispatcher.stats.summary()}")
        logger.info("Shutdown complete.")

    def _handle_signal(self) -> None:
        logger.info("Signal received, initiating shutdown...")
        self._shutdown_event.set()

    # ------------------------------------------------------------------
    # Single-writer loop
    # ------------------------------------------------------------------

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                self._process(event)
            except Exception as e:
                logger.error(f"Error processing {type(event).__name__}: {e}", exc_info=True)

    def _process(self, event: Any) -> None:
        if isinstance(event, PollResult):
            self._on_poll(event.snapshot)
        elif isinstance(event, DebounceFired):
            self._on_debounce_fired(event.event)
        elif isinstance(event, BroadcastCompleted):
            self._on_broadcast_completed(event.record)
        elif isinstance(event, InboundMessage):
            self._on_message(event)
        elif isinstance(event, (TransportEvent, WarmupElapsed, ReconnectDue)):
            self.connection.handle_event(event)
        else:
            logger.warning(f"Unknown event: {event!r}")

    def _on_poll(self, snapshot: ValueSnapshot) -> None:
        if not self.connection.is_ready:
            return
        change = self.detector.observe(snapshot)
        if change is not None:
            self.scheduler.on_change(change)

    def _broadcast_running(self) -> bool:
        task = self._broadcast_task
        return self.dispatcher.in_flight or (task is not None and not task.done())

    def _on_debounce_fired(self, event: ChangeEvent) -> None:
        if not self.connection.is_ready:
            self.broadcasts_skipped += 1
            logger.info("Debounce fired while not ready, skipping broadcast")
            return
        if self._broadcast_running():
            self.broadcasts_skipped += 1
            self.dispatcher.stats.broadcasts_dropped += 1
            logger.info("Broadcast still in flight, dropping debounced change")
            return

        # The decision is final here; delivery failures do not undo it
        self.detector.commit_broadcast(event.snapshot)
        self.broadcasts_started += 1

        # Polls queued behind the timer were judged against the old baseline
        pending = self.scheduler.pending_event
        if pending is not None and not self.detector.qualifies(pending.snapshot):
            self.scheduler.cancel()
            logger.debug("Pending change matches the new baseline, timer cancelled")

        logger.info(
            f"Broadcasting rate change buy {event.since_last_broadcast.primary:+} "
            f"sell {event.since_last_broadcast.secondary:+} to {len(self.registry)} subscribers"
        )
        self._broadcast_task = asyncio.create_task(self._run_broadcast(event.snapshot))

    async def _run_broadcast(self, snapshot: ValueSnapshot) -> None:
        record = None
        try:
            record = await self.dispatcher.broadcast(snapshot)
        except Exception as e:
            logger.error(f"Broadcast failed: {e}", exc_info=True)
        self.post(BroadcastCompleted(record))

    def _on_broadcast_completed(self, record: BroadcastRecord | None) -> None:
        self.scheduler.mark_broadcast()
        if record is not None and record.failed:
            logger.warning(
                f"{record.failed}/{len(record.recipients)} recipients missed the broadcast"
            )

    def _on_message(self, message: InboundMessage) -> None:
        if self.dedup.check_and_record(message.id):
            logger.debug(f"Duplicate message {message.id} ignored")
            return
        if message.is_self or not self.router.is_chat(message.sender_id):
            return
        if not self.connection.is_ready:
            logger.debug(
                f"Ignoring message from {message.sender_id} while {self.connection.state.value}"
            )
            return

        command = self.router.parse(message.text)
        if command is None:
            return

        sender = message.sender_id
        logger.info(f"📨 {command.value} from {sender}")

        reply: str | None = None
        if command == Command.SUBSCRIBE:
            self.registry.subscribe(sender)
            reply = SUBSCRIBED_TEXT
        elif command == Command.UNSUBSCRIBE:
            self.registry.unsubscribe(sender)
            reply = UNSUBSCRIBED_TEXT
        elif command == Command.HELP:
            reply = HELP_TEXT

        if not self.limiter.allow(sender):
            logger.debug(f"Reply to {sender} rate limited")
            return

        self.limiter.record_send(sender)
        self.dispatcher.spawn_reply(sender, reply)

    # ------------------------------------------------------------------
    # Periodic activities
    # ------------------------------------------------------------------

    async def _poll_loop(self) -> None:
        interval = self.config.monitor.poll_interval_seconds
        while True:
            if self.connection.is_ready:
                snapshot = await fetch_with_retry(self.source, self.retry_policy, purpose="poll")
                if snapshot is not None:
                    self.post(PollResult(snapshot))
            await asyncio.sleep(interval)

    async def _keepalive_loop(self) -> None:
        interval = self.config.connection.keepalive_interval_seconds
        while True:
            await asyncio.sleep(interval)
            if not self.connection.is_ready:
                continue
            try:
                await self.transport.ping()
            except Exception as e:
                logger.warning(f"Keep-alive ping failed: {e}")

    # ------------------------------------------------------------------
    # Connection callbacks
    # ------------------------------------------------------------------

    def _on_state_change(self, old: ConnectionState, new: ConnectionState) -> None:
        logger.info(f"Connection {old.value} -> {new.value}")
        if old == ConnectionState.READY and self.scheduler.pending:
            self.scheduler.cancel()
            logger.info("Pending broadcast cancelled, session left ready state")

    def _on_qr(self, payload: str) -> None:
        self.last_qr = payload
        logger.info(f"📱 QR payload: {payload}")

    def _on_fatal(self, error: Exception) -> None:
        self.fatal_error = error
        self.exit_reason = str(error)
        logger.critical(f"Stopping: {error}")
        self._shutdown_event.set()

    def stats(self) -> dict[str, Any]:
        """Operator-facing snapshot of the bot's state."""
        last = self.dispatcher.history.last()
        return {
            "state": self.connection.state.value,
            "reconnect_attempt": self.connection.attempt,
            "subscribers": len(self.registry),
            "dedup_entries": len(self.dedup),
            "debounce_fired": self.scheduler.fired,
            "broadcasts_started": self.broadcasts_started,
            "broadcasts_skipped": self.broadcasts_skipped,
            "debounce_dropped": self.scheduler.dropped,
            "dispatch": self.dispatcher.stats.summary(),
            "last_broadcast": last.to_dict() if last else None,
        }
