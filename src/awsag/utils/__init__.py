"""Core utility modules for awsag."""

from .config import CONFIG_DIR, CONFIG_FILE_YAML, Config, OrchestratorConfig
from .deadline import Deadline
from .logging_config import LoggingConfig, setup_logging
from .retry import RetryConfig, RetryExecutor
from .validators import (
    generate_group_name,
    parse_group_name,
    parse_session_duration,
    validate_environment,
    validate_ticket_id,
)

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE_YAML",
    "Config",
    "OrchestratorConfig",
    "Deadline",
    "LoggingConfig",
    "setup_logging",
    "RetryConfig",
    "RetryExecutor",
    "generate_group_name",
    "parse_group_name",
    "parse_session_duration",
    "validate_environment",
    "validate_ticket_id",
]
