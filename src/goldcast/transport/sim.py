"""Simulation transport implementation."""

from __future__ import annotations

import asyncio
import logging
from itertools import count

from goldcast.transport.base import (
    InboundMessage,
    SendError,
    SessionTransport,
    TransportEvent,
    TransportEventKind,
)

logger = logging.getLogger(__name__)


class SimTransport(SessionTransport):
    """
    In-memory session for dry runs and tests.
    Records every send; failures, disconnects and inbound chat are scripted.
    """

    def __init__(
        self,
        failing_recipients: set[str] | None = None,
        send_delay: float = 0.0,
        connect_failures: int = 0,
        qr_payload: str = "",
    ):
        super().__init__()
        self.failing_recipients = set(failing_recipients or ())
        self.send_delay = send_delay
        self.connect_failures = connect_failures
        self.qr_payload = qr_payload
        self.sent: list[tuple[str, str]] = []
        self.connect_calls = 0
        self.ping_calls = 0
        self.connected = False
        self._ids = count(1)

    async def connect(self) -> None:
        self.connect_calls += 1
        self.emit_event(TransportEvent(TransportEventKind.CONNECTING))

        if self.connect_failures > 0:
            self.connect_failures -= 1
            raise ConnectionError("Simulated connect failure")

        if self.qr_payload:
            self.emit_event(TransportEvent(TransportEventKind.QR, payload=self.qr_payload))

        self.connected = True
        logger.info("SimTransport connected")
        self.emit_event(TransportEvent(TransportEventKind.OPEN))

    async def disconnect(self) -> None:
        self.connected = False
        logger.info("SimTransport disconnected")

    async def send(self, recipient: str, text: str) -> None:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if not self.connected:
            raise SendError("Not connected")
        if recipient in self.failing_recipients:
            raise SendError(f"Simulated delivery failure to {recipient}")
        self.sent.append((recipient, text))

    async def ping(self) -> None:
        self.ping_calls += 1
        if not self.connected:
            raise SendError("Not connected")

    def drop(self, reason: str = "connection_lost") -> None:
        """Simulate the server closing the session."""
        self.connected = False
        self.emit_event(TransportEvent(TransportEventKind.CLOSE, reason=reason))

    def inject_message(
        self, sender_id: str, text: str, *, msg_id: str | None = None, is_self: bool = False
    ) -> InboundMessage:
        """Deliver an inbound chat message as if it came from the network."""
        message = InboundMessage(
            id=msg_id or f"sim-{next(self._ids)}",
            sender_id=sender_id,
            text=text,
            is_self=is_self,
        )
        self.emit_message(message)
        return message

    def sent_to(self, recipient: str) -> list[str]:
        return [text for r, text in self.sent if r == recipient]
