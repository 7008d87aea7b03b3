"""Change detection and debounced broadcast scheduling."""

from goldcast.monitor.change_detector import ChangeDetector
from goldcast.monitor.debounce import DebounceScheduler

__all__ = ["ChangeDetector", "DebounceScheduler"]
