"""Logging configuration for awsag."""

import json
import logging
import logging.handlers
import os
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

ROOT_LOGGER_NAME = "awsag"


class LogLevel(str, Enum):
    """Log levels for configuration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    CONSOLE = "console"
    JSON = "json"


@dataclass
class LoggingConfig:
    """Configuration for the logging system."""

    level: LogLevel = LogLevel.INFO
    format_type: LogFormat = LogFormat.CONSOLE
    enable_console_logging: bool = True
    log_file: Optional[str] = None
    max_file_size_mb: int = 10
    backup_count: int = 5
    console_colors: bool = True
    log_aws_requests: bool = False
    sensitive_data_patterns: List[str] = field(
        default_factory=lambda: [
            r"(client_secret|password|token|secret)\s*[=:]\s*\S+",
            r"AKIA[0-9A-Z]{16}",
            r"\b\d{12}\b",
        ]
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingConfig":
        level = str(data.get("level") or "INFO").upper()
        format_type = str(data.get("format") or "console").lower()
        return cls(
            level=LogLevel(level) if level in LogLevel.__members__ else LogLevel.INFO,
            format_type=LogFormat(format_type) if format_type in ("console", "json") else LogFormat.CONSOLE,
            enable_console_logging=bool(data.get("enable_console", True)),
            log_file=data.get("file"),
        )


class SensitiveDataFilter(logging.Filter):
    """Filter to redact credentials from log messages."""

    def __init__(self, patterns: List[str]) -> None:
        """
        Initialize the filter with sensitive data patterns.

        Args:
            patterns: List of regex patterns to match sensitive data
        """
        super().__init__()
        self.compiled_patterns = [re.compile(pattern, re.IGNORECASE) for pattern in patterns]

    def filter(self, record: logging.LogRecord) -> bool:
        # Records are modified, never dropped
        if isinstance(record.msg, str):
            record.msg = self._redact(record.msg)
        if record.args:
            record.args = tuple(
                self._redact(arg) if isinstance(arg, str) else arg for arg in record.args
            )
        return True

    def _redact(self, text: str) -> str:
        for pattern in self.compiled_patterns:
            text = pattern.sub("[REDACTED]", text)
        return text


class StructuredFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    STANDARD_ATTRS = {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "exc_info",
        "exc_text",
        "stack_info",
        "taskName",
    }

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self.STANDARD_ATTRS and not key.startswith("_")
        }
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Console formatter with color support."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
        "RESET": "\033[0m",
    }

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors and self._supports_color()

    def _supports_color(self) -> bool:
        return (
            hasattr(sys.stderr, "isatty")
            and sys.stderr.isatty()
            and os.environ.get("TERM") != "dumb"
        )

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            reset = self.COLORS["RESET"]
            formatted = (
                f"{color}[{timestamp}] {record.levelname:<8}{reset} - "
                f"{record.name} - {record.getMessage()}"
            )
        else:
            formatted = f"[{timestamp}] {record.levelname:<8} - {record.name} - {record.getMessage()}"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"
        return formatted


class LoggingManager:
    """Sets up handlers on the awsag root logger."""

    def __init__(self, config: Optional[LoggingConfig] = None):
        self.config = config or LoggingConfig()
        self._handlers_configured = False

    def setup_logging(self) -> logging.Logger:
        """Configure the awsag root logger and return it."""
        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        if self._handlers_configured:
            return root_logger

        level = getattr(logging, self.config.level.value)
        root_logger.setLevel(level)
        root_logger.handlers.clear()

        if self.config.enable_console_logging:
            root_logger.addHandler(self._create_console_handler(level))

        if self.config.log_file:
            root_logger.addHandler(self._create_file_handler(level))

        self._configure_aws_logging()
        self._handlers_configured = True
        return root_logger

    def _create_console_handler(self, level: int) -> logging.Handler:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)
        if self.config.format_type == LogFormat.JSON:
            handler.setFormatter(StructuredFormatter())
        else:
            handler.setFormatter(ColoredConsoleFormatter(use_colors=self.config.console_colors))
        handler.addFilter(SensitiveDataFilter(self.config.sensitive_data_patterns))
        return handler

    def _create_file_handler(self, level: int) -> logging.Handler:
        log_file = Path(self.config.log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            filename=str(log_file),
            maxBytes=self.config.max_file_size_mb * 1024 * 1024,
            backupCount=self.config.backup_count,
            encoding="utf-8",
        )
        handler.setLevel(level)
        handler.setFormatter(StructuredFormatter())
        handler.addFilter(SensitiveDataFilter(self.config.sensitive_data_patterns))
        return handler

    def _configure_aws_logging(self) -> None:
        for logger_name in ("boto3", "botocore", "urllib3.connectionpool"):
            logging.getLogger(logger_name).setLevel(
                logging.DEBUG if self.config.log_aws_requests else logging.WARNING
            )


def setup_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """Configure awsag logging with the given configuration."""
    return LoggingManager(config).setup_logging()
