"""Base session transport interface."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class TransportEventKind(str, Enum):
    """Connection events emitted by a session transport."""

    CONNECTING = "connecting"
    OPEN = "open"
    QR = "qr"
    CLOSE = "close"


@dataclass(frozen=True)
class TransportEvent:
    """One connection update from the transport."""

    kind: TransportEventKind
    reason: str = ""  # close reason code
    payload: str = ""  # QR payload


@dataclass(frozen=True)
class InboundMessage:
    """A chat message received by the session."""

    id: str
    sender_id: str
    text: str
    is_self: bool = False


class SendError(Exception):
    """Delivering a message to one recipient failed."""


class SessionTransport(ABC):
    """
    Abstract chat session.

    Concrete transports push connection updates and inbound messages to the
    registered callbacks. Callbacks are plain functions: they must not block,
    the application only enqueues what it receives.
    """

    def __init__(self):
        self._event_callbacks: list[Callable[[TransportEvent], None]] = []
        self._message_callbacks: list[Callable[[InboundMessage], None]] = []

    def add_event_callback(self, callback: Callable[[TransportEvent], None]):
        """Register callback for connection events."""
        self._event_callbacks.append(callback)

    def add_message_callback(self, callback: Callable[[InboundMessage], None]):
        """Register callback for inbound messages."""
        self._message_callbacks.append(callback)

    def emit_event(self, event: TransportEvent) -> None:
        for callback in self._event_callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Event callback failed: {e}", exc_info=True)

    def emit_message(self, message: InboundMessage) -> None:
        for callback in self._message_callbacks:
            try:
                callback(message)
            except Exception as e:
                logger.error(f"Message callback failed: {e}", exc_info=True)

    @abstractmethod
    async def connect(self) -> None:
        """Open (or re-open) the session. Progress is reported via events."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the session without emitting a retryable close."""
        pass

    @abstractmethod
    async def send(self, recipient: str, text: str) -> None:
        """
        Send a text message.

        Raises:
            SendError: If delivery to this recipient failed.
        """
        pass

    async def ping(self) -> None:
        """Keep-alive. Transports without one ignore it."""
        pass
