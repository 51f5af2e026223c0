"""Configuration management for jules-command.

Configuration follows a priority hierarchy:
1. Environment variables (JULES_API_KEY, STALL_*, AUTO_MERGE_*, ...)
2. YAML config file (jules-command.yaml or $JULES_COMMAND_CONFIG)
3. Hardcoded defaults in this module

Every config dataclass validates itself on construction. Invalid thresholds
raise ValidationError, which aborts startup instead of surfacing mid-cycle.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from jules_command.constants import (
    DEFAULT_ACTIVITY_WINDOW,
    DEFAULT_AUTO_MERGE_MAX_COMPLEXITY,
    DEFAULT_AUTO_MERGE_MAX_FILES,
    DEFAULT_AUTO_MERGE_MAX_LINES,
    DEFAULT_AUTO_MERGE_MIN_AGE_HOURS,
    DEFAULT_COMPLEXITY_FILES_THRESHOLD,
    DEFAULT_COMPLEXITY_LINES_THRESHOLD,
    DEFAULT_CONFIG_FILE,
    DEFAULT_CONSECUTIVE_ERRORS,
    DEFAULT_DATABASE_PATH,
    DEFAULT_FEEDBACK_TIMEOUT_MIN,
    DEFAULT_GITHUB_BASE_URL,
    DEFAULT_JULES_BASE_URL,
    DEFAULT_LOG_BACKUP_COUNT,
    DEFAULT_LOG_MAX_SIZE_MB,
    DEFAULT_LOG_ROTATION_ENABLED,
    DEFAULT_NO_PROGRESS_TIMEOUT_MIN,
    DEFAULT_PLAN_APPROVAL_TIMEOUT_MIN,
    DEFAULT_POLL_DELAY_BETWEEN_SESSIONS_MS,
    DEFAULT_POLLING_INTERVAL_MS,
    DEFAULT_QUEUE_TIMEOUT_MIN,
    ENV_CONFIG_FILE,
    ENV_DATABASE_PATH,
    ENV_DEBUG,
    ENV_GITHUB_TOKEN,
    ENV_JULES_API_KEY,
    ENV_LOG_LEVEL,
    ENV_NUMERIC_OVERRIDES,
    LOG_LEVEL_DEBUG,
    LOG_LEVEL_INFO,
    MAX_LOG_BACKUP_COUNT,
    MAX_LOG_MAX_SIZE_MB,
    MIN_LOG_MAX_SIZE_MB,
    VALID_LOG_LEVELS,
)
from jules_command.exceptions import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)


def _require_non_negative(name: str, value: float) -> None:
    if value < 0:
        raise ValidationError(
            f"{name} cannot be negative",
            field=name,
            value=value,
            expected=">= 0",
        )


def _require_positive(name: str, value: float) -> None:
    if value <= 0:
        raise ValidationError(
            f"{name} must be positive",
            field=name,
            value=value,
            expected="> 0",
        )


@dataclass
class StallConfig:
    """Thresholds for the stall-detection rule cascade.

    Attributes:
        plan_approval_timeout_min: Minutes a plan may await approval.
        feedback_timeout_min: Minutes a question to the user may go unanswered.
        no_progress_timeout_min: Minutes an in-progress session may go without activity.
        queue_timeout_min: Minutes a session may sit queued.
        consecutive_errors: Number of newest activities that must all be
            failing command outputs to report repeated errors.
    """

    plan_approval_timeout_min: float = DEFAULT_PLAN_APPROVAL_TIMEOUT_MIN
    feedback_timeout_min: float = DEFAULT_FEEDBACK_TIMEOUT_MIN
    no_progress_timeout_min: float = DEFAULT_NO_PROGRESS_TIMEOUT_MIN
    queue_timeout_min: float = DEFAULT_QUEUE_TIMEOUT_MIN
    consecutive_errors: int = DEFAULT_CONSECUTIVE_ERRORS

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValidationError: If any configuration value is invalid.
        """
        _require_non_negative("plan_approval_timeout_min", self.plan_approval_timeout_min)
        _require_non_negative("feedback_timeout_min", self.feedback_timeout_min)
        _require_non_negative("no_progress_timeout_min", self.no_progress_timeout_min)
        _require_non_negative("queue_timeout_min", self.queue_timeout_min)
        if self.consecutive_errors < 1:
            raise ValidationError(
                "consecutive_errors must be at least 1",
                field="consecutive_errors",
                value=self.consecutive_errors,
                expected=">= 1",
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StallConfig":
        """Create config from dictionary.

        Args:
            data: Configuration dictionary.

        Returns:
            StallConfig instance.
        """
        return cls(
            plan_approval_timeout_min=data.get(
                "plan_approval_timeout_min", DEFAULT_PLAN_APPROVAL_TIMEOUT_MIN
            ),
            feedback_timeout_min=data.get("feedback_timeout_min", DEFAULT_FEEDBACK_TIMEOUT_MIN),
            no_progress_timeout_min=data.get(
                "no_progress_timeout_min", DEFAULT_NO_PROGRESS_TIMEOUT_MIN
            ),
            queue_timeout_min=data.get("queue_timeout_min", DEFAULT_QUEUE_TIMEOUT_MIN),
            consecutive_errors=data.get("consecutive_errors", DEFAULT_CONSECUTIVE_ERRORS),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "plan_approval_timeout_min": self.plan_approval_timeout_min,
            "feedback_timeout_min": self.feedback_timeout_min,
            "no_progress_timeout_min": self.no_progress_timeout_min,
            "queue_timeout_min": self.queue_timeout_min,
            "consecutive_errors": self.consecutive_errors,
        }


@dataclass
class AutoMergeConfig:
    """Thresholds for the auto-merge eligibility gate.

    Attributes:
        max_complexity: Highest complexity score that may merge unattended (0-1).
        max_lines: Highest changed-line count that may merge unattended.
        max_files: Highest changed-file count that may merge unattended.
        min_age_hours: Minimum PR age before it may merge unattended.
    """

    max_complexity: float = DEFAULT_AUTO_MERGE_MAX_COMPLEXITY
    max_lines: int = DEFAULT_AUTO_MERGE_MAX_LINES
    max_files: int = DEFAULT_AUTO_MERGE_MAX_FILES
    min_age_hours: float = DEFAULT_AUTO_MERGE_MIN_AGE_HOURS

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValidationError: If any configuration value is invalid.
        """
        if not 0 <= self.max_complexity <= 1:
            raise ValidationError(
                "max_complexity must be between 0 and 1",
                field="max_complexity",
                value=self.max_complexity,
                expected="0.0 - 1.0",
            )
        _require_non_negative("max_lines", self.max_lines)
        _require_non_negative("max_files", self.max_files)
        _require_non_negative("min_age_hours", self.min_age_hours)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AutoMergeConfig":
        """Create config from dictionary."""
        return cls(
            max_complexity=data.get("max_complexity", DEFAULT_AUTO_MERGE_MAX_COMPLEXITY),
            max_lines=data.get("max_lines", DEFAULT_AUTO_MERGE_MAX_LINES),
            max_files=data.get("max_files", DEFAULT_AUTO_MERGE_MAX_FILES),
            min_age_hours=data.get("min_age_hours", DEFAULT_AUTO_MERGE_MIN_AGE_HOURS),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "max_complexity": self.max_complexity,
            "max_lines": self.max_lines,
            "max_files": self.max_files,
            "min_age_hours": self.min_age_hours,
        }


@dataclass
class ComplexityConfig:
    """Normalization denominators for the complexity scorer.

    Attributes:
        lines_threshold: Changed-line count that saturates the lines component.
        files_threshold: Changed-file count that saturates the files component.
    """

    lines_threshold: int = DEFAULT_COMPLEXITY_LINES_THRESHOLD
    files_threshold: int = DEFAULT_COMPLEXITY_FILES_THRESHOLD

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        _require_positive("lines_threshold", self.lines_threshold)
        _require_positive("files_threshold", self.files_threshold)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ComplexityConfig":
        """Create config from dictionary."""
        return cls(
            lines_threshold=data.get("lines_threshold", DEFAULT_COMPLEXITY_LINES_THRESHOLD),
            files_threshold=data.get("files_threshold", DEFAULT_COMPLEXITY_FILES_THRESHOLD),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "lines_threshold": self.lines_threshold,
            "files_threshold": self.files_threshold,
        }


@dataclass
class PollingConfig:
    """Configuration for the poll cycle.

    Attributes:
        interval_ms: Pause between cycles when watching continuously.
        delay_between_sessions_ms: Pause between two sessions within one cycle.
        activity_window: Number of newest activities loaded for stall evaluation.
    """

    interval_ms: int = DEFAULT_POLLING_INTERVAL_MS
    delay_between_sessions_ms: int = DEFAULT_POLL_DELAY_BETWEEN_SESSIONS_MS
    activity_window: int = DEFAULT_ACTIVITY_WINDOW

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        _require_positive("interval_ms", self.interval_ms)
        _require_non_negative("delay_between_sessions_ms", self.delay_between_sessions_ms)
        if self.activity_window < 1:
            raise ValidationError(
                "activity_window must be at least 1",
                field="activity_window",
                value=self.activity_window,
                expected=">= 1",
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PollingConfig":
        """Create config from dictionary."""
        return cls(
            interval_ms=data.get("interval_ms", DEFAULT_POLLING_INTERVAL_MS),
            delay_between_sessions_ms=data.get(
                "delay_between_sessions_ms", DEFAULT_POLL_DELAY_BETWEEN_SESSIONS_MS
            ),
            activity_window=data.get("activity_window", DEFAULT_ACTIVITY_WINDOW),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "interval_ms": self.interval_ms,
            "delay_between_sessions_ms": self.delay_between_sessions_ms,
            "activity_window": self.activity_window,
        }


@dataclass
class LogRotationConfig:
    """Configuration for log file rotation.

    Attributes:
        enabled: Whether to rotate the log file.
        max_size_mb: Maximum log file size in megabytes before rotation.
        backup_count: Number of rotated files to keep.
    """

    enabled: bool = DEFAULT_LOG_ROTATION_ENABLED
    max_size_mb: int = DEFAULT_LOG_MAX_SIZE_MB
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValidationError: If any configuration value is invalid.
        """
        if not MIN_LOG_MAX_SIZE_MB <= self.max_size_mb <= MAX_LOG_MAX_SIZE_MB:
            raise ValidationError(
                f"max_size_mb must be between {MIN_LOG_MAX_SIZE_MB} and {MAX_LOG_MAX_SIZE_MB}",
                field="max_size_mb",
                value=self.max_size_mb,
                expected=f"{MIN_LOG_MAX_SIZE_MB} - {MAX_LOG_MAX_SIZE_MB}",
            )
        if not 0 <= self.backup_count <= MAX_LOG_BACKUP_COUNT:
            raise ValidationError(
                f"backup_count must be between 0 and {MAX_LOG_BACKUP_COUNT}",
                field="backup_count",
                value=self.backup_count,
                expected=f"0 - {MAX_LOG_BACKUP_COUNT}",
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogRotationConfig":
        """Create config from dictionary."""
        return cls(
            enabled=data.get("enabled", DEFAULT_LOG_ROTATION_ENABLED),
            max_size_mb=data.get("max_size_mb", DEFAULT_LOG_MAX_SIZE_MB),
            backup_count=data.get("backup_count", DEFAULT_LOG_BACKUP_COUNT),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "enabled": self.enabled,
            "max_size_mb": self.max_size_mb,
            "backup_count": self.backup_count,
        }

    def get_max_bytes(self) -> int:
        """Maximum log file size in bytes."""
        return self.max_size_mb * 1024 * 1024


@dataclass
class JulesCommandConfig:
    """Top-level jules-command configuration.

    Attributes:
        jules_api_key: API key for the Jules API (remote refresh is off without it).
        github_token: GitHub token for PR sync and merges.
        database_path: Path to the SQLite database.
        jules_base_url: Jules API base URL.
        github_base_url: GitHub REST API base URL.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional log file; stderr when unset.
        stall: Stall detection thresholds.
        auto_merge: Auto-merge gate thresholds.
        complexity: Complexity normalization thresholds.
        polling: Poll cycle pacing.
        log_rotation: Log file rotation settings.
    """

    jules_api_key: str | None = None
    github_token: str | None = None
    database_path: str = DEFAULT_DATABASE_PATH
    jules_base_url: str = DEFAULT_JULES_BASE_URL
    github_base_url: str = DEFAULT_GITHUB_BASE_URL
    log_level: str = LOG_LEVEL_INFO
    log_file: str | None = None
    stall: StallConfig = field(default_factory=StallConfig)
    auto_merge: AutoMergeConfig = field(default_factory=AutoMergeConfig)
    complexity: ComplexityConfig = field(default_factory=ComplexityConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    log_rotation: LogRotationConfig = field(default_factory=LogRotationConfig)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ValidationError(
                f"Invalid log level: {self.log_level}",
                field="log_level",
                value=self.log_level,
                expected=f"one of {VALID_LOG_LEVELS}",
            )
        if not self.database_path:
            raise ValidationError(
                "database_path cannot be empty",
                field="database_path",
                value=self.database_path,
                expected="path to a SQLite database file",
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JulesCommandConfig":
        """Create config from dictionary.

        Args:
            data: Configuration dictionary (the parsed YAML document).

        Returns:
            JulesCommandConfig instance.
        """
        return cls(
            jules_api_key=data.get("jules_api_key"),
            github_token=data.get("github_token"),
            database_path=data.get("database_path", DEFAULT_DATABASE_PATH),
            jules_base_url=data.get("jules_base_url", DEFAULT_JULES_BASE_URL),
            github_base_url=data.get("github_base_url", DEFAULT_GITHUB_BASE_URL),
            log_level=data.get("log_level", LOG_LEVEL_INFO),
            log_file=data.get("log_file"),
            stall=StallConfig.from_dict(data.get("stall") or {}),
            auto_merge=AutoMergeConfig.from_dict(data.get("auto_merge") or {}),
            complexity=ComplexityConfig.from_dict(data.get("complexity") or {}),
            polling=PollingConfig.from_dict(data.get("polling") or {}),
            log_rotation=LogRotationConfig.from_dict(data.get("log_rotation") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization.

        Secrets are reported as set/unset rather than echoed.
        """
        return {
            "jules_api_key": "***" if self.jules_api_key else None,
            "github_token": "***" if self.github_token else None,
            "database_path": self.database_path,
            "jules_base_url": self.jules_base_url,
            "github_base_url": self.github_base_url,
            "log_level": self.log_level,
            "log_file": self.log_file,
            "stall": self.stall.to_dict(),
            "auto_merge": self.auto_merge.to_dict(),
            "complexity": self.complexity.to_dict(),
            "polling": self.polling.to_dict(),
            "log_rotation": self.log_rotation.to_dict(),
        }

    def get_effective_log_level(self) -> str:
        """Get effective log level, considering environment variable overrides.

        Priority (highest to lowest):
        1. JULES_COMMAND_DEBUG=1 → DEBUG
        2. JULES_COMMAND_LOG_LEVEL environment variable
        3. Config file log_level setting
        """
        if os.environ.get(ENV_DEBUG, "").lower() in ("1", "true", "yes"):
            return LOG_LEVEL_DEBUG

        env_level = os.environ.get(ENV_LOG_LEVEL, "").upper()
        if env_level in VALID_LOG_LEVELS:
            return env_level

        return self.log_level.upper()


def _resolve_config_path(path: Path | None) -> Path:
    if path is not None:
        return path
    env_path = os.environ.get(ENV_CONFIG_FILE)
    if env_path:
        return Path(env_path)
    return Path.cwd() / DEFAULT_CONFIG_FILE


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay environment variables onto the parsed config document.

    Raises:
        ValidationError: If a numeric variable cannot be parsed.
    """
    result = dict(data)
    for env_var, key in (
        (ENV_JULES_API_KEY, "jules_api_key"),
        (ENV_GITHUB_TOKEN, "github_token"),
        (ENV_DATABASE_PATH, "database_path"),
    ):
        value = os.environ.get(env_var)
        if value:
            result[key] = value

    for env_var, section, key, cast in ENV_NUMERIC_OVERRIDES:
        raw = os.environ.get(env_var)
        if raw is None or raw.strip() == "":
            continue
        try:
            value = cast(raw.strip())
        except ValueError:
            raise ValidationError(
                f"Environment variable {env_var} must be numeric",
                field=f"{section}.{key}",
                value=raw,
                expected=cast.__name__,
            ) from None
        section_data = dict(result.get(section) or {})
        section_data[key] = value
        result[section] = section_data
    return result


def load_config(path: Path | None = None) -> JulesCommandConfig:
    """Load configuration from YAML and the environment.

    A missing config file is not an error: defaults plus environment
    overrides apply. Invalid thresholds abort startup.

    Args:
        path: Explicit config file path. Falls back to $JULES_COMMAND_CONFIG,
            then ./jules-command.yaml.

    Returns:
        Validated JulesCommandConfig.

    Raises:
        ConfigurationError: If the config file cannot be read or parsed.
        ValidationError: If any value is out of range.
    """
    config_file = _resolve_config_path(path)
    data: dict[str, Any] = {}

    if config_file.exists():
        try:
            with open(config_file, encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Failed to parse config YAML: {e}", config_file=config_file
            ) from e
        except OSError as e:
            raise ConfigurationError(
                f"Failed to read config file: {e}", config_file=config_file
            ) from e
        if not isinstance(loaded, dict):
            raise ConfigurationError(
                "Config file must contain a mapping at the top level",
                config_file=config_file,
            )
        data = loaded
        logger.debug(f"Loaded config file {config_file}")
    else:
        logger.debug(f"No config file at {config_file}, using defaults")

    config = JulesCommandConfig.from_dict(_apply_env_overrides(data))
    logger.debug(
        f"Effective config: db={config.database_path}, "
        f"jules_api={'on' if config.jules_api_key else 'off'}, "
        f"github={'on' if config.github_token else 'off'}"
    )
    return config
