"""Constants for issuegate."""

# Filesystem layout under the home directory
HOME_ENV_VAR = "ISSUEGATE_HOME"
DEFAULT_HOME_DIRNAME = ".issuegate"
CONFIG_FILENAME = "config.toml"
LOCKS_DIRNAME = "locks"
LEDGER_FILENAME = "execution_history.json"

# Lock container suffix and metadata field files
LOCK_SUFFIX = ".lock"
TOMBSTONE_MARKER = ".reclaimed-"
PID_FIELD = "pid"
TIMESTAMP_FIELD = "timestamp"
HOST_FIELD = "host"
RESOURCE_FIELD = "resource"
OWNER_FIELD = "owner"

# Name of the lock serializing ledger writers
LEDGER_LOCK_NAME = "execution_history"

# Timing defaults (seconds)
LOCK_TIMEOUT = 300  # 5 minutes, as the original acquire loop
STALE_LOCK_AGE = 900  # 15 minutes
HISTORY_LOCK_TIMEOUT = 30
INCOMPLETE_GRACE = 10
POLL_INTERVAL = 5

# Retry and capacity defaults
MAX_RETRIES = 2
MAX_CONCURRENT = 3
MAX_WRITE_ATTEMPTS = 3
MAX_RECLAIM_RETRIES = 3  # Immediate re-attempts after reclaiming per poll round
SWEEP_LIMIT = 50

# Exit code for "try again next cycle" (EX_TEMPFAIL)
EXIT_DEFERRED = 75

# Default timeout for the processing command (10 minutes)
PROCESS_TIMEOUT = 600
