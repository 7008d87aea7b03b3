"""Price snapshots and the sources that produce them."""

from goldcast.data.snapshot import ChangeEvent, Delta, ValueSnapshot
from goldcast.data.value_source import ValueSource, ValueSourceError

__all__ = [
    "ChangeEvent",
    "Delta",
    "ValueSnapshot",
    "ValueSource",
    "ValueSourceError",
]
