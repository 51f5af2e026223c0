"""Custom exceptions for jules-command.

All exceptions inherit from JulesCommandError, allowing callers to catch
every project error with a single except clause if desired.

Exception hierarchy:
    JulesCommandError (base)
    ├── ConfigurationError
    │   └── ValidationError
    ├── StoreError
    ├── ClientError
    └── PrUrlError
"""

from pathlib import Path
from typing import Any


class JulesCommandError(Exception):
    """Base exception for all jules-command errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize error.

        Args:
            message: Error description.
            details: Optional dictionary with additional context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation."""
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(JulesCommandError):
    """Raised when configuration is invalid or cannot be loaded.

    Examples:
        - Invalid YAML syntax in config file
        - Non-numeric value in a threshold environment variable
    """

    def __init__(
        self,
        message: str,
        config_file: Path | None = None,
        key: str | None = None,
    ):
        """Initialize configuration error.

        Args:
            message: Error description.
            config_file: Path to the problematic config file.
            key: The configuration key that caused the error.
        """
        details = {}
        if config_file:
            details["config_file"] = str(config_file)
        if key:
            details["key"] = key
        super().__init__(message, details)
        self.config_file = config_file
        self.key = key


class ValidationError(ConfigurationError):
    """Raised when configuration values fail validation.

    Examples:
        - Negative stall timeouts
        - Zero complexity normalization thresholds
        - Unknown log level
    """

    def __init__(
        self,
        message: str,
        field: str,
        value: Any = None,
        expected: str | None = None,
    ):
        """Initialize validation error.

        Args:
            message: Error description.
            field: The field that failed validation.
            value: The invalid value (truncated if too long).
            expected: Description of expected value format.
        """
        super().__init__(message)
        self.details["field"] = field
        if value is not None:
            value_str = str(value)
            self.details["value"] = value_str[:100] + "..." if len(value_str) > 100 else value_str
        if expected:
            self.details["expected"] = expected
        self.field = field
        self.value = value
        self.expected = expected


# =============================================================================
# Storage Errors
# =============================================================================


class StoreError(JulesCommandError):
    """Raised when the record store cannot be opened or queried."""

    def __init__(self, message: str, db_path: Path | None = None):
        details = {}
        if db_path:
            details["db_path"] = str(db_path)
        super().__init__(message, details)
        self.db_path = db_path


# =============================================================================
# Client Errors
# =============================================================================


class ClientError(JulesCommandError):
    """Raised when a call to the Jules or GitHub API fails.

    Examples:
        - Connection refused or timed out
        - Non-2xx response status
        - Response body that is not valid JSON
    """

    def __init__(
        self,
        message: str,
        service: str,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        """Initialize client error.

        Args:
            message: Error description.
            service: Service name ("jules" or "github").
            status_code: HTTP status code when a response was received.
            cause: Underlying exception that caused the failure.
        """
        details: dict[str, Any] = {"service": service}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.service = service
        self.status_code = status_code
        self.cause = cause


class PrUrlError(JulesCommandError):
    """Raised when a string is not a GitHub pull request URL."""

    def __init__(self, message: str, url: str):
        super().__init__(message, {"url": url})
        self.url = url
