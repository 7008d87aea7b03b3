"""Connection Manager - Session lifecycle with warm-up and reconnect backoff.

States:
    connecting -> warming_up     on transport "open"
    warming_up -> ready          after the warm-up delay
    *          -> logged_out     on close with the logged-out reason (absorbing)
    *          -> reconnecting   on any other close, then back to connecting
                                 after ``backoff_delay(attempt)``

Messages that arrive while warming up are a backlog flush from the server;
callers gate on ``is_ready`` and ignore them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from goldcast.config_loader import ConnectionConfig
from goldcast.constants import LOGGED_OUT_REASON, ConnectionState
from goldcast.transport.base import SessionTransport, TransportEvent, TransportEventKind

logger = logging.getLogger(__name__)


class LoggedOutError(Exception):
    """The session was unlinked; a new login (QR scan) is required."""


class ReconnectExhaustedError(Exception):
    """Reconnecting failed ``max_attempts`` times in a row."""


@dataclass(frozen=True)
class WarmupElapsed:
    """Warm-up timer expiry for one session generation."""

    generation: int


@dataclass(frozen=True)
class ReconnectDue:
    """Backoff timer expiry for one session generation."""

    generation: int


ConnectionEvent = TransportEvent | WarmupElapsed | ReconnectDue


def backoff_delay(attempt: int, base: float, growth: float, max_delay: float) -> float:
    """Delay before reconnect number ``attempt`` (0-based): ``base * growth**attempt``, capped."""
    try:
        delay = base * growth**attempt
    except OverflowError:
        return max_delay
    return min(delay, max_delay)


class ConnectionManager:
    """
    Owns the transport's lifecycle.

    All transitions happen in ``handle_event``. Timers do not transition
    directly: they hand their event to ``post`` (the application's merged
    queue), so the transition runs in order with everything else.
    """

    def __init__(
        self,
        transport: SessionTransport,
        config: ConnectionConfig | None = None,
        *,
        logged_out_reason: str = LOGGED_OUT_REASON,
        post: Callable[[ConnectionEvent], None] | None = None,
        on_state_change: Callable[[ConnectionState, ConnectionState], None] | None = None,
        on_qr: Callable[[str], None] | None = None,
        on_fatal: Callable[[Exception], None] | None = None,
    ):
        self.transport = transport
        self.config = config or ConnectionConfig()
        self.logged_out_reason = logged_out_reason
        self._post = post or self.handle_event
        self.on_state_change = on_state_change
        self.on_qr = on_qr
        self.on_fatal = on_fatal

        self._state = ConnectionState.CONNECTING
        self._attempt = 0
        self._generation = 0
        self._timer: asyncio.TimerHandle | None = None
        self._connect_task: asyncio.Task | None = None
        self.fatal_error: Exception | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def is_ready(self) -> bool:
        return self._state == ConnectionState.READY and self.fatal_error is None

    @property
    def is_terminal(self) -> bool:
        return self._state == ConnectionState.LOGGED_OUT or self.fatal_error is not None

    async def start(self) -> None:
        """Open the session for the first time."""
        logger.info("Connecting session...")
        self._set_state(ConnectionState.CONNECTING)
        await self._connect()

    def stop(self) -> None:
        self._cancel_timer()
        if self._connect_task and not self._connect_task.done():
            self._connect_task.cancel()

    def next_delay(self) -> float:
        return backoff_delay(
            self._attempt,
            self.config.backoff_base_seconds,
            self.config.backoff_growth,
            self.config.backoff_max_seconds,
        )

    def handle_event(self, event: ConnectionEvent) -> None:
        """Apply one event to the state machine."""
        if self.is_terminal:
            logger.debug(f"Ignoring {event} in terminal state {self._state.value}")
            return

        if isinstance(event, WarmupElapsed):
            if event.generation == self._generation and self._state == ConnectionState.WARMING_UP:
                self._timer = None
                self._attempt = 0
                self._set_state(ConnectionState.READY)
                logger.info("✅ Session ready")
            return

        if isinstance(event, ReconnectDue):
            if event.generation == self._generation and self._state == ConnectionState.RECONNECTING:
                self._timer = None
                self._set_state(ConnectionState.CONNECTING)
                self._connect_task = asyncio.create_task(self._connect())
            return

        if event.kind == TransportEventKind.QR:
            logger.info("Login QR received, scan it with the phone to link the session")
            if self.on_qr:
                self.on_qr(event.payload)
        elif event.kind == TransportEventKind.OPEN:
            self._on_open()
        elif event.kind == TransportEventKind.CLOSE:
            self._on_close(event.reason)
        else:
            logger.debug("Transport connecting")

    def _on_open(self) -> None:
        if self._state not in (ConnectionState.CONNECTING, ConnectionState.RECONNECTING):
            logger.debug(f"Ignoring open in state {self._state.value}")
            return

        self._cancel_timer()
        self._generation += 1
        self._set_state(ConnectionState.WARMING_UP)
        logger.info(f"Session open, warming up for {self.config.warmup_seconds}s")
        self._schedule(self.config.warmup_seconds, WarmupElapsed(self._generation))

    def _on_close(self, reason: str) -> None:
        if self._state == ConnectionState.RECONNECTING:
            logger.debug(f"Ignoring duplicate close ({reason}) while reconnecting")
            return

        self._cancel_timer()

        if reason == self.logged_out_reason:
            self._set_state(ConnectionState.LOGGED_OUT)
            logger.critical("Session logged out. Delete the session and scan a new QR to re-link.")
            self._report_fatal(LoggedOutError("Session logged out, re-authentication required"))
            return

        if self._attempt >= self.config.max_attempts:
            logger.critical(
                f"Disconnected ({reason}) and {self._attempt} reconnect attempts exhausted"
            )
            self._report_fatal(
                ReconnectExhaustedError(
                    f"Gave up after {self._attempt} reconnect attempts (last reason: {reason})"
                )
            )
            return

        delay = self.next_delay()
        self._attempt += 1
        self._generation += 1
        self._set_state(ConnectionState.RECONNECTING)
        logger.warning(
            f"🔌 Disconnected ({reason}), reconnect {self._attempt}/{self.config.max_attempts} "
            f"in {delay:.1f}s"
        )
        self._schedule(delay, ReconnectDue(self._generation))

    async def _connect(self) -> None:
        try:
            await self.transport.connect()
        except Exception as e:
            logger.warning(f"Connect failed: {e}")
            self._post(TransportEvent(TransportEventKind.CLOSE, reason=f"connect_failed: {e}"))

    def _schedule(self, delay: float, event: ConnectionEvent) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._post, event)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _set_state(self, new: ConnectionState) -> None:
        old = self._state
        self._state = new
        if old != new:
            logger.debug(f"Connection state {old.value} -> {new.value}")
            if self.on_state_change:
                self.on_state_change(old, new)

    def _report_fatal(self, error: Exception) -> None:
        self.fatal_error = error
        if self.on_fatal:
            self.on_fatal(error)
