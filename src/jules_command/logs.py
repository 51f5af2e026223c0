"""Logging setup for the CLI and the MCP server."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from jules_command.config import LogRotationConfig
from jules_command.constants import LOG_FORMAT

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "mcp")


def configure_logging(
    log_level: str,
    log_file: Path | str | None = None,
    rotation: LogRotationConfig | None = None,
) -> None:
    """Configure root logging for jules-command.

    Logs go to stderr unless a log file is given, so stdout stays free for
    command output and the MCP stdio protocol.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional path to a log file.
        rotation: Rotation settings applied when logging to a file.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)

    # Replace handlers from any previous configuration
    for existing in list(root.handlers):
        root.removeHandler(existing)
        existing.close()

    handler: logging.Handler
    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        if rotation is not None and rotation.enabled:
            handler = RotatingFileHandler(
                log_file,
                maxBytes=rotation.get_max_bytes(),
                backupCount=rotation.backup_count,
                encoding="utf-8",
            )
        else:
            handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)

    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(level)
    root.addHandler(handler)

    if level > logging.DEBUG:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
