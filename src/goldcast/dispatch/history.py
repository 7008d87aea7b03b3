"""Broadcast outcome records."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime

from goldcast.data.snapshot import ValueSnapshot


@dataclass(frozen=True)
class RecipientOutcome:
    """Delivery result for one recipient."""

    recipient: str
    ok: bool
    error: str | None = None


@dataclass
class BroadcastRecord:
    """One completed broadcast."""

    baseline: ValueSnapshot
    fired_at: datetime
    completed_at: datetime | None = None
    recipients: list[RecipientOutcome] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for o in self.recipients if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.recipients if not o.ok)

    def to_dict(self) -> dict:
        return {
            "buy": str(self.baseline.primary),
            "sell": str(self.baseline.secondary),
            "fired_at": self.fired_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "sent": self.sent,
            "failed": self.failed,
            "errors": {o.recipient: o.error for o in self.recipients if not o.ok},
        }


class BroadcastHistory:
    """Bounded ring of recent broadcasts, kept for diagnostics."""

    def __init__(self, max_size: int = 50):
        self._records: deque[BroadcastRecord] = deque(maxlen=max_size)

    def append(self, record: BroadcastRecord) -> None:
        self._records.append(record)

    def last(self) -> BroadcastRecord | None:
        return self._records[-1] if self._records else None

    def records(self) -> list[BroadcastRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)
