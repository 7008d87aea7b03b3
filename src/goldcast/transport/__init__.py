"""Session transports: the chat connection the bot talks through."""

from goldcast.transport.base import InboundMessage, SendError, SessionTransport, TransportEvent

__all__ = ["InboundMessage", "SendError", "SessionTransport", "TransportEvent"]
