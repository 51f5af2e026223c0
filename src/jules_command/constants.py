"""Constants for jules-command.

Centralizes magic strings and numbers used across the engine, the store,
the API clients and the tool surface.

Constants are organized by domain:
- Session states
- Activity types
- Stall rules
- Complexity scoring
- Auto-merge gate
- PR review tracking
- File classification patterns
- Configuration defaults and environment variables
"""

from typing import Final

# =============================================================================
# Session States
# =============================================================================

SESSION_STATE_QUEUED: Final[str] = "queued"
SESSION_STATE_PLANNING: Final[str] = "planning"
SESSION_STATE_AWAITING_PLAN_APPROVAL: Final[str] = "awaiting_plan_approval"
SESSION_STATE_AWAITING_USER_FEEDBACK: Final[str] = "awaiting_user_feedback"
SESSION_STATE_IN_PROGRESS: Final[str] = "in_progress"
SESSION_STATE_PAUSED: Final[str] = "paused"
SESSION_STATE_FAILED: Final[str] = "failed"
SESSION_STATE_COMPLETED: Final[str] = "completed"

VALID_SESSION_STATES: Final[tuple[str, ...]] = (
    SESSION_STATE_QUEUED,
    SESSION_STATE_PLANNING,
    SESSION_STATE_AWAITING_PLAN_APPROVAL,
    SESSION_STATE_AWAITING_USER_FEEDBACK,
    SESSION_STATE_IN_PROGRESS,
    SESSION_STATE_PAUSED,
    SESSION_STATE_FAILED,
    SESSION_STATE_COMPLETED,
)
TERMINAL_SESSION_STATES: Final[tuple[str, ...]] = (
    SESSION_STATE_FAILED,
    SESSION_STATE_COMPLETED,
)

# =============================================================================
# Activity Types
# =============================================================================

ACTIVITY_TYPE_MESSAGE: Final[str] = "message"
ACTIVITY_TYPE_PLAN: Final[str] = "plan"
ACTIVITY_TYPE_BASH_OUTPUT: Final[str] = "bash_output"
ACTIVITY_TYPE_FILE_CHANGE: Final[str] = "file_change"
ACTIVITY_TYPE_ERROR: Final[str] = "error"
VALID_ACTIVITY_TYPES: Final[tuple[str, ...]] = (
    ACTIVITY_TYPE_MESSAGE,
    ACTIVITY_TYPE_PLAN,
    ACTIVITY_TYPE_BASH_OUTPUT,
    ACTIVITY_TYPE_FILE_CHANGE,
    ACTIVITY_TYPE_ERROR,
)

ORIGINATOR_AGENT: Final[str] = "agent"
ORIGINATOR_USER: Final[str] = "user"
ORIGINATOR_SYSTEM: Final[str] = "system"

# Marker written into progress descriptions of command-output activities
EXIT_CODE_PATTERN: Final[str] = r"Exit Code:\s*(-?\d+)"

# Newest-first window loaded for stall evaluation
DEFAULT_ACTIVITY_WINDOW: Final[int] = 100

# Read-only listing and query tools
DEFAULT_LIST_LIMIT: Final[int] = 50
MAX_LIST_LIMIT: Final[int] = 200

# =============================================================================
# Stall Rules
# =============================================================================

STALL_RULE_PLAN_APPROVAL_TIMEOUT: Final[str] = "plan_approval_timeout"
STALL_RULE_FEEDBACK_TIMEOUT: Final[str] = "feedback_timeout"
STALL_RULE_NO_PROGRESS: Final[str] = "no_progress"
STALL_RULE_QUEUE_TIMEOUT: Final[str] = "queue_timeout"
STALL_RULE_REPEATED_ERRORS: Final[str] = "repeated_errors"

DEFAULT_PLAN_APPROVAL_TIMEOUT_MIN: Final[int] = 30
DEFAULT_FEEDBACK_TIMEOUT_MIN: Final[int] = 30
DEFAULT_NO_PROGRESS_TIMEOUT_MIN: Final[int] = 15
DEFAULT_QUEUE_TIMEOUT_MIN: Final[int] = 10
DEFAULT_CONSECUTIVE_ERRORS: Final[int] = 3

# =============================================================================
# Complexity Scoring
# =============================================================================

COMPLEXITY_WEIGHT_LINES: Final[float] = 0.25
COMPLEXITY_WEIGHT_FILES: Final[float] = 0.20
COMPLEXITY_WEIGHT_CRITICAL: Final[float] = 0.25
COMPLEXITY_WEIGHT_TESTS: Final[float] = 0.15
COMPLEXITY_WEIGHT_DEPENDENCIES: Final[float] = 0.15

DEFAULT_COMPLEXITY_LINES_THRESHOLD: Final[int] = 500
DEFAULT_COMPLEXITY_FILES_THRESHOLD: Final[int] = 20

COMPLEXITY_LABEL_TRIVIAL: Final[str] = "trivial"
COMPLEXITY_LABEL_LOW: Final[str] = "low"
COMPLEXITY_LABEL_MEDIUM: Final[str] = "medium"
COMPLEXITY_LABEL_HIGH: Final[str] = "high"
COMPLEXITY_LABEL_CRITICAL: Final[str] = "critical"

# Upper bounds (exclusive) for each band, lowest first
COMPLEXITY_LABEL_BANDS: Final[tuple[tuple[float, str], ...]] = (
    (0.2, COMPLEXITY_LABEL_TRIVIAL),
    (0.4, COMPLEXITY_LABEL_LOW),
    (0.6, COMPLEXITY_LABEL_MEDIUM),
    (0.8, COMPLEXITY_LABEL_HIGH),
)

# =============================================================================
# Auto-Merge Gate
# =============================================================================

DEFAULT_AUTO_MERGE_MAX_COMPLEXITY: Final[float] = 0.3
DEFAULT_AUTO_MERGE_MAX_LINES: Final[int] = 200
DEFAULT_AUTO_MERGE_MAX_FILES: Final[int] = 5
DEFAULT_AUTO_MERGE_MIN_AGE_HOURS: Final[float] = 2

CI_STATUS_SUCCESS: Final[str] = "success"
CI_STATUS_FAILURE: Final[str] = "failure"
CI_STATUS_PENDING: Final[str] = "pending"
CI_STATUS_ERROR: Final[str] = "error"
CI_STATUS_UNKNOWN: Final[str] = "unknown"

MERGE_METHOD_MERGE: Final[str] = "merge"
MERGE_METHOD_SQUASH: Final[str] = "squash"
MERGE_METHOD_REBASE: Final[str] = "rebase"
VALID_MERGE_METHODS: Final[tuple[str, ...]] = (
    MERGE_METHOD_MERGE,
    MERGE_METHOD_SQUASH,
    MERGE_METHOD_REBASE,
)

# =============================================================================
# PR Review Tracking
# =============================================================================

REVIEW_STATUS_PENDING: Final[str] = "pending"
REVIEW_STATUS_APPROVED: Final[str] = "approved"
REVIEW_STATUS_CHANGES_REQUESTED: Final[str] = "changes_requested"
REVIEW_STATUS_CLOSED: Final[str] = "closed"
VALID_REVIEW_STATUSES: Final[tuple[str, ...]] = (
    REVIEW_STATUS_PENDING,
    REVIEW_STATUS_APPROVED,
    REVIEW_STATUS_CHANGES_REQUESTED,
    REVIEW_STATUS_CLOSED,
)

PR_STATE_OPEN: Final[str] = "open"
PR_STATE_CLOSED: Final[str] = "closed"
PR_STATE_MERGED: Final[str] = "merged"

# GitHub review states
GITHUB_REVIEW_APPROVED: Final[str] = "APPROVED"
GITHUB_REVIEW_CHANGES_REQUESTED: Final[str] = "CHANGES_REQUESTED"

PR_URL_PATTERN: Final[str] = r"^https://github\.com/([^/]+)/([^/]+)/pull/(\d+)(?:/.*)?$"

# =============================================================================
# File Classification Patterns (fnmatch, matched against the full path)
# =============================================================================

TEST_FILE_PATTERNS: Final[tuple[str, ...]] = (
    "test_*.py",
    "*_test.py",
    "*_test.go",
    "*.test.*",
    "*.spec.*",
    "tests/*",
    "*/tests/*",
    "test/*",
    "*/test/*",
    "*/__tests__/*",
    "__tests__/*",
)

CRITICAL_FILE_PATTERNS: Final[tuple[str, ...]] = (
    ".github/workflows/*",
    "*/migrations/*",
    "migrations/*",
    "*auth*",
    "*security*",
    "*secret*",
    "Dockerfile",
    "*/Dockerfile",
    "docker-compose*.yml",
    "*.env",
    ".env*",
    "*.tf",
)

DEPENDENCY_MANIFEST_NAMES: Final[frozenset[str]] = frozenset(
    {
        "package.json",
        "package-lock.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "pyproject.toml",
        "poetry.lock",
        "uv.lock",
        "Pipfile",
        "Pipfile.lock",
        "setup.py",
        "setup.cfg",
        "Cargo.toml",
        "Cargo.lock",
        "go.mod",
        "go.sum",
        "Gemfile",
        "Gemfile.lock",
        "composer.json",
        "composer.lock",
        "pom.xml",
        "build.gradle",
    }
)
DEPENDENCY_MANIFEST_PATTERNS: Final[tuple[str, ...]] = ("requirements*.txt",)

# =============================================================================
# Polling
# =============================================================================

POLL_TYPE_SESSION: Final[str] = "session"
DEFAULT_POLLING_INTERVAL_MS: Final[int] = 5000
DEFAULT_POLL_DELAY_BETWEEN_SESSIONS_MS: Final[int] = 100

# =============================================================================
# External APIs
# =============================================================================

DEFAULT_JULES_BASE_URL: Final[str] = "https://jules.googleapis.com/v1alpha"
DEFAULT_GITHUB_BASE_URL: Final[str] = "https://api.github.com"
JULES_API_KEY_HEADER: Final[str] = "X-Goog-Api-Key"
GITHUB_API_VERSION: Final[str] = "2022-11-28"
DEFAULT_HTTP_TIMEOUT_SECONDS: Final[float] = 30.0
JULES_ACTIVITY_PAGE_SIZE: Final[int] = 50
GITHUB_PAGE_SIZE: Final[int] = 100

# =============================================================================
# Configuration
# =============================================================================

DEFAULT_CONFIG_FILE: Final[str] = "jules-command.yaml"
DEFAULT_DATABASE_PATH: Final[str] = "./data/jules-command.db"

ENV_CONFIG_FILE: Final[str] = "JULES_COMMAND_CONFIG"
ENV_JULES_API_KEY: Final[str] = "JULES_API_KEY"
ENV_GITHUB_TOKEN: Final[str] = "GITHUB_TOKEN"
ENV_DATABASE_PATH: Final[str] = "DATABASE_PATH"
ENV_LOG_LEVEL: Final[str] = "JULES_COMMAND_LOG_LEVEL"
ENV_DEBUG: Final[str] = "JULES_COMMAND_DEBUG"

# (env var, config section, key, type) for numeric threshold overrides
ENV_NUMERIC_OVERRIDES: Final[tuple[tuple[str, str, str, type], ...]] = (
    ("POLLING_INTERVAL_MS", "polling", "interval_ms", int),
    ("POLL_DELAY_BETWEEN_SESSIONS_MS", "polling", "delay_between_sessions_ms", int),
    ("STALL_PLAN_APPROVAL_TIMEOUT_MIN", "stall", "plan_approval_timeout_min", float),
    ("STALL_FEEDBACK_TIMEOUT_MIN", "stall", "feedback_timeout_min", float),
    ("STALL_NO_PROGRESS_TIMEOUT_MIN", "stall", "no_progress_timeout_min", float),
    ("STALL_QUEUE_TIMEOUT_MIN", "stall", "queue_timeout_min", float),
    ("STALL_CONSECUTIVE_ERRORS", "stall", "consecutive_errors", int),
    ("AUTO_MERGE_MAX_COMPLEXITY", "auto_merge", "max_complexity", float),
    ("AUTO_MERGE_MAX_LINES", "auto_merge", "max_lines", int),
    ("AUTO_MERGE_MAX_FILES", "auto_merge", "max_files", int),
    ("AUTO_MERGE_MIN_AGE_HOURS", "auto_merge", "min_age_hours", float),
    ("COMPLEXITY_LINES_THRESHOLD", "complexity", "lines_threshold", int),
    ("COMPLEXITY_FILES_THRESHOLD", "complexity", "files_threshold", int),
)

# =============================================================================
# Logging
# =============================================================================

LOG_LEVEL_DEBUG: Final[str] = "DEBUG"
LOG_LEVEL_INFO: Final[str] = "INFO"
LOG_LEVEL_WARNING: Final[str] = "WARNING"
LOG_LEVEL_ERROR: Final[str] = "ERROR"
VALID_LOG_LEVELS: Final[tuple[str, ...]] = (
    LOG_LEVEL_DEBUG,
    LOG_LEVEL_INFO,
    LOG_LEVEL_WARNING,
    LOG_LEVEL_ERROR,
)
LOG_FORMAT: Final[str] = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

DEFAULT_LOG_ROTATION_ENABLED: Final[bool] = True
DEFAULT_LOG_MAX_SIZE_MB: Final[int] = 10
DEFAULT_LOG_BACKUP_COUNT: Final[int] = 3
MIN_LOG_MAX_SIZE_MB: Final[int] = 1
MAX_LOG_MAX_SIZE_MB: Final[int] = 500
MAX_LOG_BACKUP_COUNT: Final[int] = 20

# =============================================================================
# MCP Server
# =============================================================================

MCP_SERVER_NAME: Final[str] = "Jules Command"
MCP_TRANSPORTS: Final[tuple[str, ...]] = ("stdio", "sse", "streamable-http")
