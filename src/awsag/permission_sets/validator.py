"""Validation of permission set configurations."""

import json
import re
from typing import Optional

from ..utils.validators import SESSION_DURATION_PATTERN, parse_session_duration
from .models import PermissionSetConfig, PermissionSetValidationResult

NAME_PATTERN = r"^[a-zA-Z0-9+=,.@_-]+$"
AWS_MANAGED_POLICY_PATTERN = r"^arn:aws:iam::aws:policy/[a-zA-Z0-9+=,.@_/-]+$"
CUSTOMER_MANAGED_POLICY_PATTERN = r"^arn:aws:iam::\d{12}:policy/[a-zA-Z0-9+=,.@_/-]+$"

MAX_NAME_LENGTH = 32
MIN_SESSION_MINUTES = 15
MAX_SESSION_MINUTES = 720
MAX_TAG_KEY_LENGTH = 128
MAX_TAG_VALUE_LENGTH = 256

PRIVILEGED_POLICY_MARKERS = ("AdministratorAccess", "PowerUserAccess")


def is_valid_policy_arn(arn: str) -> bool:
    return bool(
        re.match(AWS_MANAGED_POLICY_PATTERN, arn) or re.match(CUSTOMER_MANAGED_POLICY_PATTERN, arn)
    )


def validate_inline_policy(policy: str) -> Optional[str]:
    """Return an error message if the inline policy document is malformed, else None."""
    try:
        parsed = json.loads(policy)
    except (TypeError, ValueError):
        return "Policy must be valid JSON"

    if not isinstance(parsed, dict) or not parsed.get("Version"):
        return "Policy must include Version field"

    statements = parsed.get("Statement")
    if not isinstance(statements, list):
        return "Policy must include Statement array"

    for statement in statements:
        if not isinstance(statement, dict) or statement.get("Effect") not in ("Allow", "Deny"):
            return "Each statement must have Effect of Allow or Deny"
        if not statement.get("Action") and not statement.get("NotAction"):
            return "Each statement must have Action or NotAction"

    return None


class PermissionSetValidator:
    """Checks a permission set configuration before it is created."""

    def validate(self, config: PermissionSetConfig) -> PermissionSetValidationResult:
        """
        Validate a permission set configuration.

        Args:
            config: Configuration to validate

        Returns:
            Validation result with errors and warnings
        """
        result = PermissionSetValidationResult()

        name = (config.name or "").strip()
        if not name:
            result.add_error("Permission set name is required")
        elif len(config.name) > MAX_NAME_LENGTH:
            result.add_error(f"Permission set name must be {MAX_NAME_LENGTH} characters or less")
        elif not re.match(NAME_PATTERN, config.name):
            result.add_error("Permission set name contains invalid characters")

        if config.session_duration:
            if not re.match(SESSION_DURATION_PATTERN, config.session_duration):
                result.add_error(
                    "Invalid session duration format. Use ISO 8601 duration format (e.g., PT1H, PT4H)"
                )
            else:
                minutes = parse_session_duration(config.session_duration) or 0
                if minutes < MIN_SESSION_MINUTES:
                    result.add_error("Session duration must be at least 15 minutes")
                elif minutes > MAX_SESSION_MINUTES:
                    result.add_error("Session duration cannot exceed 12 hours (720 minutes)")

        for policy_arn in config.managed_policies:
            if not is_valid_policy_arn(policy_arn):
                result.add_error(f"Invalid managed policy ARN: {policy_arn}")

        if config.inline_policy:
            policy_error = validate_inline_policy(config.inline_policy)
            if policy_error:
                result.add_error(f"Invalid inline policy: {policy_error}")

        privileged = [
            arn
            for arn in config.managed_policies
            if any(marker in arn for marker in PRIVILEGED_POLICY_MARKERS)
        ]
        if privileged:
            result.add_warning(
                f"Permission set includes highly privileged policies: {', '.join(privileged)}"
            )

        if not config.managed_policies and not config.inline_policy:
            result.add_warning(
                "Permission set has no policies attached - users will have no permissions"
            )

        for key, value in config.tags.items():
            if len(key) > MAX_TAG_KEY_LENGTH:
                result.add_error(f"Tag key '{key}' exceeds {MAX_TAG_KEY_LENGTH} characters")
            if len(value) > MAX_TAG_VALUE_LENGTH:
                result.add_error(
                    f"Tag value for key '{key}' exceeds {MAX_TAG_VALUE_LENGTH} characters"
                )

        return result
