"""
Logging configuration for chatfork.

Console output is split by level (DEBUG/INFO to stdout, WARNING and above to
stderr) and a rotating file per context (``cli``, ``engine``, ...) is written
under the configured log directory.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from typing import Optional

from chatfork.config import Settings, settings

STANDARD_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class JsonFormatter(logging.Formatter):
    """Format records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


class MaxLevelFilter(logging.Filter):
    """Pass only records below a given level."""

    def __init__(self, max_level: int):
        super().__init__()
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.max_level


def _formatter(config: Settings) -> logging.Formatter:
    if config.log_format == "json":
        return JsonFormatter()
    return logging.Formatter(STANDARD_FORMAT)


def setup_logging(context: str = "app", config: Optional[Settings] = None) -> None:
    """
    Configure the root logger.

    Args:
        context: Name used for the log file (chatfork-<context>.log)
        config: Settings to use (defaults to the global settings)

    Raises:
        PermissionError: If the log directory cannot be created
    """
    config = config or settings
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    formatter = _formatter(config)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    if config.log_console_enabled:
        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(logging.DEBUG)
        stdout_handler.addFilter(MaxLevelFilter(logging.WARNING))
        stdout_handler.setFormatter(formatter)
        root.addHandler(stdout_handler)

        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.WARNING)
        stderr_handler.setFormatter(formatter)
        root.addHandler(stderr_handler)

    if config.log_file_enabled:
        log_dir = config.log_directory
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / f"chatfork-{context}.log",
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Third-party HTTP clients are noisy at INFO
    for noisy in ("httpx", "openai", "anthropic"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))
