"""Shared constants for the stepflow engine."""

STATE_KEY_PREFIX = "workflow-state-"
STATE_VERSION = "2.0.0"
LEGACY_STATE_VERSION = "1.0.0"

DEFAULT_AUTO_SAVE_INTERVAL_MS = 5000
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0

DEFAULT_ERROR_LOG_SIZE = 100
DEFAULT_BACKOFF_DELAYS = (1.0, 2.0, 5.0)
DEFAULT_RATE_LIMIT_WAIT = 60.0
