"""Shared test helpers."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal

import pytest

from goldcast.data.snapshot import ValueSnapshot
from goldcast.data.value_source import ValueSource, ValueSourceError


def snap(buy, sell, observed_at: datetime | None = None) -> ValueSnapshot:
    return ValueSnapshot(
        primary=Decimal(str(buy)),
        secondary=Decimal(str(sell)),
        observed_at=observed_at or datetime(2024, 5, 1, 9, 0, 0),
    )


class ScriptedSource(ValueSource):
    """Returns queued snapshots in order; ``None`` entries raise ValueSourceError."""

    def __init__(self, script: Iterable[ValueSnapshot | None] = (), repeat_last: bool = True):
        self.script = list(script)
        self.repeat_last = repeat_last
        self.calls = 0
        self._last: ValueSnapshot | None = None
        self.closed = False

    def push(self, *items: ValueSnapshot | None) -> None:
        self.script.extend(items)

    async def fetch(self, timeout: float) -> ValueSnapshot:
        self.calls += 1
        if self.script:
            item = self.script.pop(0)
        elif self.repeat_last and self._last is not None:
            item = self._last
        else:
            item = None

        if item is None:
            raise ValueSourceError("scripted failure")
        self._last = item
        return item

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def source():
    return ScriptedSource()
