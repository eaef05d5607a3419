"""
System-Wide Constants for git-committer

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# TIME UNITS
# =============================================================================
SECONDS_PER_MINUTE: Final[int] = 60
SECONDS_PER_HOUR: Final[int] = 60 * SECONDS_PER_MINUTE
SECONDS_PER_DAY: Final[int] = 24 * SECONDS_PER_HOUR

# =============================================================================
# TIMESTAMP DISTRIBUTION
# =============================================================================
# Total width of the jitter window around each evenly spaced slot (±30 min)
JITTER_WINDOW_SECONDS: Final[int] = SECONDS_PER_HOUR

# =============================================================================
# CONTENT
# =============================================================================
CONTENT_MODULUS: Final[int] = 10
TRACKED_PATH: Final[str] = "commit.txt"
BLOB_MODE: Final[str] = "100644"
COMMIT_MESSAGE_TEMPLATE: Final[str] = "feat: commit {index}"

# =============================================================================
# GENERATOR DEFAULTS
# =============================================================================
DEFAULT_BATCH_SIZE: Final[int] = 100_000
DEFAULT_MAX_COMMITS_PER_DAY: Final[int] = 1440
DEFAULT_DATE_SPAN_DAYS: Final[int] = 7

# =============================================================================
# WORKER POOL
# =============================================================================
MIN_AUTO_WORKERS: Final[int] = 2
MAX_AUTO_WORKERS: Final[int] = 12
SPOOL_PREFIX: Final[str] = "git-committer-"
SPOOL_FIELD_SEPARATOR: Final[str] = "|"

# =============================================================================
# PUBLISHING
# =============================================================================
DEFAULT_PUSH_QUEUE_SIZE: Final[int] = 3
DEFAULT_REMOTE: Final[str] = "origin"
DEFAULT_BRANCH: Final[str] = "main"

# =============================================================================
# FILES
# =============================================================================
DEFAULT_CONFIG_FILE: Final[str] = "committer-config.json"
ENV_PREFIX: Final[str] = "COMMITTER_"

# =============================================================================
# EXIT CODES
# =============================================================================
EXIT_OK: Final[int] = 0
EXIT_FAILURE: Final[int] = 1
EXIT_INTERRUPTED: Final[int] = 130
