"""Inbound chat command parsing."""

from goldcast.commands.router import CommandRouter

__all__ = ["CommandRouter"]
