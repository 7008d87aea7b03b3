"""Core constants for goldcast."""

from enum import Enum


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class SourceKind(str, Enum):
    """Price source selection."""

    TREASURY = "treasury"
    SIM = "sim"


class ConnectionState(str, Enum):
    """Session transport lifecycle."""

    CONNECTING = "connecting"
    WARMING_UP = "warming_up"
    READY = "ready"
    RECONNECTING = "reconnecting"
    LOGGED_OUT = "logged_out"


class Command(str, Enum):
    """Commands recognized in inbound chat text."""

    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    QUERY = "query"
    HELP = "help"


# ============================================
# Default Values
# ============================================

DEFAULT_TREASURY_URL = "https://api.treasury.id/api/v1/antigrvty/gold/rate"
DEFAULT_FETCH_TIMEOUT = 2.0

DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_MIN_CHANGE = "1"
DEFAULT_DEBOUNCE_SECONDS = 5.0
DEFAULT_MIN_BROADCAST_INTERVAL = 60.0

DEFAULT_BATCH_SIZE = 15
DEFAULT_BATCH_DELAY = 1.0
DEFAULT_SEND_TIMEOUT = 10.0
DEFAULT_HISTORY_SIZE = 50

DEFAULT_COOLDOWN_SECONDS = 10.0
DEFAULT_GLOBAL_FLOOR_SECONDS = 0.5

DEFAULT_WARMUP_SECONDS = 15.0
DEFAULT_BACKOFF_BASE = 2.0
DEFAULT_BACKOFF_GROWTH = 2.0
DEFAULT_BACKOFF_MAX = 300.0
DEFAULT_MAX_ATTEMPTS = 8

DEFAULT_DEDUP_CAPACITY = 1000

# Close reason reported by session libraries when the device was unlinked
LOGGED_OUT_REASON = "logged_out"

CHAT_SUFFIXES = ("@s.whatsapp.net", "@c.us", "@g.us")

# ============================================
# Application Constants
# ============================================

APP_NAME = "goldcast"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
