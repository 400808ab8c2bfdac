"""Shared default constants for the picket worker."""

# Idle sleep between reservation attempts when the queue is empty
# or the datastore could not be reached.
DEFAULT_POLL_INTERVAL_MS: int = 5_000

# How many claimable rows a single reservation reads before racing for them.
DEFAULT_CANDIDATE_LIMIT: int = 5

# A running job whose lock is older than this is treated as abandoned.
# Must exceed the slowest legitimate processor call.
DEFAULT_LOCK_TIMEOUT_MS: int = 300_000  # 5 minutes

# Period of the stale lock sweep.
DEFAULT_STALE_CHECK_INTERVAL_MS: int = 300_000  # 5 minutes

# Retry backoff: base * 2^(attempts-1), capped.
DEFAULT_RETRY_BASE_DELAY_MS: int = 5_000
DEFAULT_RETRY_MAX_DELAY_MS: int = 60_000

# Per-job-type processor budget when nothing is configured.
DEFAULT_PROCESSING_TIMEOUT_MS: int = 240_000  # 4 minutes

# Upper bound on waiting for the in-flight job after a stop signal.
DEFAULT_SHUTDOWN_MAX_WAIT_MS: int = 270_000
DEFAULT_SHUTDOWN_POLL_INTERVAL_MS: int = 1_000

# Enqueue defaults.
DEFAULT_PRIORITY: int = 5
MIN_PRIORITY: int = 1
MAX_PRIORITY: int = 10
DEFAULT_MAX_ATTEMPTS: int = 5

# last_error is stored as text; keep it readable in dashboards.
MAX_ERROR_MESSAGE_LENGTH: int = 2_000

STALE_LOCK_MESSAGE: str = 'Lock released due to timeout (worker may have crashed)'
SHUTDOWN_REQUEUE_MESSAGE: str = 'Job interrupted by worker shutdown'
