"""Maps inbound chat text to bot commands."""

from __future__ import annotations

from goldcast.config_loader import CommandsConfig
from goldcast.constants import Command


class CommandRouter:
    """
    Case-insensitive keyword matching against the whole message.

    ``/emas`` and ``emas`` are the same command. A keyword inside a longer
    sentence is ordinary chat and gets no answer, which keeps the bot quiet
    in groups.
    """

    def __init__(self, config: CommandsConfig | None = None):
        self.config = config or CommandsConfig()
        self._keywords: dict[str, Command] = {}
        for command, words in (
            (Command.SUBSCRIBE, self.config.subscribe),
            (Command.UNSUBSCRIBE, self.config.unsubscribe),
            (Command.QUERY, self.config.query),
            (Command.HELP, self.config.help),
        ):
            for word in words:
                self._keywords.setdefault(word, command)

    def parse(self, text: str) -> Command | None:
        word = text.strip().lower()
        if word.startswith("/"):
            word = word[1:]
        return self._keywords.get(word)

    def is_chat(self, sender_id: str) -> bool:
        """Direct chats and groups only; status updates and broadcast lists are ignored."""
        return any(
            sender_id.endswith(suffix) or (suffix == "@g.us" and suffix in sender_id)
            for suffix in self.config.chat_suffixes
        )
