"""Configuration utilities for awsag."""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from rich.console import Console

from ..exceptions import ConfigurationError
from ..models import Environment
from .retry import RetryConfig
from .validators import SIMPLE_SESSION_DURATION_PATTERN, is_valid_account_id

console = Console()

CONFIG_DIR = Path.home() / ".awsag"
CONFIG_FILE_YAML = CONFIG_DIR / "config.yaml"

DEFAULT_AZURE_CONFIG = {
    "enterprise_application_id": "",
}

DEFAULT_AWS_CONFIG = {
    "region": "us-east-1",
    "profile": None,
    "identity_center_instance_arn": "",
    "identity_store_id": "",
    "account_mapping": {env.value: "" for env in Environment},
}

DEFAULT_RETRY_CONFIG = {
    "max_attempts": 3,
    "base_delay_ms": 1000,
    "max_delay_ms": 30000,
    "exponential_backoff": True,
}

DEFAULT_WORKFLOW_CONFIG = {
    "group_prefix": "CE-AWS",
    "default_owners": [],
    "provisioning_poll_interval": 10,
    "provisioning_timeout": 300,
    "sync_check_attempts": 12,
    "sync_check_interval": 10,
    "deletion_poll_attempts": 30,
    "deletion_poll_interval": 10,
    "deletion_status_error_tolerance": 3,
    "bulk_max_concurrency": 1,
    "workflow_state_retention_hours": 24,
}

DEFAULT_HISTORY_CONFIG = {
    "storage_directory": "~/.awsag/operations",
    "max_entries": 1000,
    "retention_days": 30,
}

DEFAULT_LOGGING_CONFIG = {
    "level": "INFO",
    "format": "console",
    "file": None,
    "enable_console": True,
}

DEFAULT_TEMPLATES_CONFIG = {
    "default_session_duration": "PT1H",
    "directory": "~/.awsag/templates",
}

DEFAULTS = {
    "azure": DEFAULT_AZURE_CONFIG,
    "aws": DEFAULT_AWS_CONFIG,
    "retry": DEFAULT_RETRY_CONFIG,
    "workflow": DEFAULT_WORKFLOW_CONFIG,
    "history": DEFAULT_HISTORY_CONFIG,
    "logging": DEFAULT_LOGGING_CONFIG,
    "templates": DEFAULT_TEMPLATES_CONFIG,
}


@dataclass
class OrchestratorConfig:
    """Settings consumed by the assignment orchestrator."""

    enterprise_app_id: str = ""
    account_mapping: Dict[str, str] = field(default_factory=dict)
    group_prefix: str = "CE-AWS"
    default_owners: List[str] = field(default_factory=list)
    default_session_duration: str = "PT1H"
    provisioning_poll_interval: float = 10.0
    provisioning_timeout: float = 300.0
    sync_check_attempts: int = 12
    sync_check_interval: float = 10.0
    deletion_poll_attempts: int = 30
    deletion_poll_interval: float = 10.0
    deletion_status_error_tolerance: int = 3
    bulk_max_concurrency: int = 1
    workflow_state_retention_hours: float = 24.0

    def __post_init__(self):
        if self.bulk_max_concurrency < 1:
            raise ValueError("bulk_max_concurrency must be at least 1")

    def account_for(self, environment: Environment) -> str:
        """
        Look up the AWS account mapped to an environment.

        Raises:
            ConfigurationError: If no account is mapped
        """
        account_id = self.account_mapping.get(environment.value)
        if not account_id:
            raise ConfigurationError(
                f"No AWS account configured for environment {environment.value}",
                context={"environment": environment.value},
            )
        return account_id

    def environment_for(self, account_id: str) -> Optional[str]:
        for environment, mapped in self.account_mapping.items():
            if mapped == account_id:
                return environment
        return None


class Config:
    """Manages awsag configuration from YAML with environment variable overrides."""

    def __init__(self, config_file: Optional[Path] = None):
        """
        Initialize the configuration manager.

        Args:
            config_file: Path to the YAML configuration file
        """
        self.config_file = Path(config_file) if config_file else CONFIG_FILE_YAML
        self.config_data: Dict[str, Any] = {}
        self._config_loaded = False

    def _ensure_config_loaded(self):
        """Ensure configuration is loaded from file."""
        if not self._config_loaded:
            self._load_config()
            self._config_loaded = True

    def reload_config(self):
        """Force reload configuration from file."""
        self._config_loaded = False
        self._ensure_config_loaded()

    def _load_config(self):
        """Load defaults, the YAML file and environment overrides, in that order."""
        file_data = {}
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    file_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                console.print(
                    f"[red]Error: Configuration file {self.config_file} is not valid YAML: {e}[/red]"
                )
                file_data = {}
            except OSError as e:
                console.print(f"[red]Error reading configuration file {self.config_file}: {e}[/red]")
                file_data = {}

        merged = self._deep_merge(DEFAULTS, file_data if isinstance(file_data, dict) else {})
        self.config_data = self._apply_environment_overrides(merged)
        self._expand_tilde_paths()

    def _expand_tilde_paths(self):
        """Expand tilde (~) paths in configuration to actual home directory paths."""
        for section_data in self.config_data.values():
            if isinstance(section_data, dict):
                for key, value in section_data.items():
                    if isinstance(value, str) and value.startswith("~"):
                        section_data[key] = str(Path(value).expanduser())

    def _apply_environment_overrides(self, data: Dict[str, Any]) -> Dict[str, Any]:
        azure = data["azure"]
        aws = data["aws"]
        retry = data["retry"]
        logging_section = data["logging"]

        azure["enterprise_application_id"] = os.environ.get(
            "AZURE_ENTERPRISE_APP_ID", azure.get("enterprise_application_id", "")
        )
        aws["region"] = os.environ.get("AWS_REGION", aws.get("region"))
        aws["profile"] = os.environ.get("AWS_PROFILE", aws.get("profile"))
        aws["identity_center_instance_arn"] = os.environ.get(
            "AWS_IDENTITY_CENTER_INSTANCE_ARN", aws.get("identity_center_instance_arn", "")
        )
        aws["identity_store_id"] = os.environ.get(
            "AWS_IDENTITY_STORE_ID", aws.get("identity_store_id", "")
        )
        mapping = aws.setdefault("account_mapping", {})
        for env in Environment:
            env_var = f"AWS_ACCOUNT_{env.value.upper()}"
            if env_var in os.environ:
                mapping[env.value] = os.environ[env_var]

        logging_section["level"] = os.environ.get("LOG_LEVEL", logging_section.get("level"))
        logging_section["file"] = os.environ.get("LOG_FILE", logging_section.get("file"))

        retry["max_attempts"] = self._get_env_int("RETRY_MAX_ATTEMPTS", retry["max_attempts"])
        retry["base_delay_ms"] = self._get_env_int("RETRY_BASE_DELAY_MS", retry["base_delay_ms"])
        retry["max_delay_ms"] = self._get_env_int("RETRY_MAX_DELAY_MS", retry["max_delay_ms"])
        retry["exponential_backoff"] = self._get_env_bool(
            "RETRY_EXPONENTIAL_BACKOFF", retry["exponential_backoff"]
        )
        return data

    def _deep_merge(self, dict1: Dict[str, Any], dict2: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deep merge two dictionaries without modifying either.

        Args:
            dict1: Base dictionary
            dict2: Dictionary to merge

        Returns:
            Merged dictionary
        """
        result = {}
        for key, value in dict1.items():
            result[key] = self._deep_merge(value, {}) if isinstance(value, dict) else value
        for key, value in dict2.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _get_env_bool(self, env_var: str, default: bool) -> bool:
        value = os.environ.get(env_var)
        if value is None:
            return default
        return value.lower() in ("true", "1", "yes", "on")

    def _get_env_int(self, env_var: str, default: int) -> int:
        value = os.environ.get(env_var)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            console.print(
                f"[yellow]Warning: Invalid integer value for {env_var}: {value}. Using default: {default}[/yellow]"
            )
            return default

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value with dot notation support.

        Args:
            key: Configuration key (supports dot notation like "aws.region")
            default: Default value if key doesn't exist

        Returns:
            Configuration value
        """
        self._ensure_config_loaded()

        value: Any = self.config_data
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def get_all(self) -> Dict[str, Any]:
        self._ensure_config_loaded()
        return self._deep_merge(self.config_data, {})

    def save_config(self):
        """Save the configuration to the YAML file."""
        self._ensure_config_loaded()
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            yaml.dump(self.config_data, f, default_flow_style=False, indent=2, sort_keys=False)

    def get_retry_config(self) -> RetryConfig:
        retry = self.get("retry")
        return RetryConfig(
            max_attempts=int(retry["max_attempts"]),
            base_delay=retry["base_delay_ms"] / 1000.0,
            max_delay=retry["max_delay_ms"] / 1000.0,
            exponential_backoff=bool(retry["exponential_backoff"]),
        )

    def get_orchestrator_config(self) -> OrchestratorConfig:
        workflow = self.get("workflow")
        return OrchestratorConfig(
            enterprise_app_id=self.get("azure.enterprise_application_id", ""),
            account_mapping={k: str(v) for k, v in self.get("aws.account_mapping", {}).items() if v},
            group_prefix=workflow["group_prefix"],
            default_owners=list(workflow.get("default_owners") or []),
            default_session_duration=self.get("templates.default_session_duration", "PT1H"),
            provisioning_poll_interval=float(workflow["provisioning_poll_interval"]),
            provisioning_timeout=float(workflow["provisioning_timeout"]),
            sync_check_attempts=int(workflow["sync_check_attempts"]),
            sync_check_interval=float(workflow["sync_check_interval"]),
            deletion_poll_attempts=int(workflow["deletion_poll_attempts"]),
            deletion_poll_interval=float(workflow["deletion_poll_interval"]),
            deletion_status_error_tolerance=int(workflow["deletion_status_error_tolerance"]),
            bulk_max_concurrency=int(workflow["bulk_max_concurrency"]),
            workflow_state_retention_hours=float(workflow["workflow_state_retention_hours"]),
        )

    def get_history_config(self) -> Dict[str, Any]:
        return dict(self.get("history"))

    def get_logging_config(self) -> Dict[str, Any]:
        return dict(self.get("logging"))

    def validate(self) -> Tuple[List[str], List[str]]:
        """
        Validate the loaded configuration.

        Returns:
            Tuple of (errors, warnings)
        """
        errors: List[str] = []
        warnings: List[str] = []

        if not self.get("azure.enterprise_application_id"):
            errors.append("Azure Enterprise Application ID is required (AZURE_ENTERPRISE_APP_ID)")

        if not self.get("aws.identity_center_instance_arn"):
            errors.append(
                "AWS Identity Center Instance ARN is required (AWS_IDENTITY_CENTER_INSTANCE_ARN)"
            )
        if not self.get("aws.identity_store_id"):
            errors.append("AWS Identity Store ID is required (AWS_IDENTITY_STORE_ID)")

        mapping = self.get("aws.account_mapping", {}) or {}
        for env in Environment:
            account_id = mapping.get(env.value)
            if not account_id:
                errors.append(
                    f"AWS {env.value} account ID is required (AWS_ACCOUNT_{env.value.upper()})"
                )
            elif not is_valid_account_id(str(account_id)):
                errors.append(f"AWS {env.value} account ID must be 12 digits: {account_id}")

        if not self.get("aws.region"):
            warnings.append("AWS region not specified, using default: us-east-1")

        retry = self.get("retry")
        if retry["max_attempts"] < 1:
            errors.append("Retry max attempts must be at least 1")
        if retry["base_delay_ms"] < 0:
            errors.append("Retry base delay must be non-negative")
        if retry["max_delay_ms"] < retry["base_delay_ms"]:
            errors.append("Retry max delay must be greater than or equal to base delay")

        duration = self.get("templates.default_session_duration")
        if duration and not re.match(SIMPLE_SESSION_DURATION_PATTERN, duration):
            errors.append(
                "Default session duration must be in ISO 8601 format (e.g., PT1H, PT30M)"
            )

        if self.get("logging.file") and not self.get("logging.enable_console", True):
            warnings.append("Console logging is disabled but file logging is enabled")

        if int(self.get("workflow.bulk_max_concurrency", 1)) < 1:
            errors.append("Bulk max concurrency must be at least 1")

        return errors, warnings

    def require_valid(self) -> None:
        """Raise ConfigurationError if the configuration has errors."""
        errors, _ = self.validate()
        if errors:
            raise ConfigurationError(
                f"Invalid configuration: {'; '.join(errors)}", context={"errors": errors}
            )
