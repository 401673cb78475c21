"""Tests for permission set validation."""

import json

import pytest

from src.awsag.permission_sets.models import PermissionSetConfig
from src.awsag.permission_sets.validator import (
    PermissionSetValidator,
    is_valid_policy_arn,
    validate_inline_policy,
)

READ_ONLY = "arn:aws:iam::aws:policy/ReadOnlyAccess"


def config(**overrides):
    values = {
        "name": "CE-AWS-Dev-AG-0042",
        "description": "Access grant",
        "session_duration": "PT4H",
        "managed_policies": [READ_ONLY],
    }
    values.update(overrides)
    return PermissionSetConfig(**values)


class TestPermissionSetValidator:
    """Test cases for PermissionSetValidator."""

    def setup_method(self):
        self.validator = PermissionSetValidator()

    def test_valid_config(self):
        result = self.validator.validate(config())

        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []

    @pytest.mark.parametrize(
        "name, message",
        [
            ("", "Permission set name is required"),
            ("   ", "Permission set name is required"),
            ("A" * 33, "Permission set name must be 32 characters or less"),
            ("bad name!", "Permission set name contains invalid characters"),
        ],
    )
    def test_invalid_names(self, name, message):
        result = self.validator.validate(config(name=name))

        assert not result.is_valid
        assert message in result.errors

    def test_name_at_length_limit(self):
        assert self.validator.validate(config(name="A" * 32)).is_valid

    @pytest.mark.parametrize(
        "duration, message",
        [
            ("4 hours", "Invalid session duration format"),
            ("PT10M", "Session duration must be at least 15 minutes"),
            ("PT13H", "Session duration cannot exceed 12 hours"),
        ],
    )
    def test_invalid_session_durations(self, duration, message):
        result = self.validator.validate(config(session_duration=duration))

        assert not result.is_valid
        assert result.errors[0].startswith(message)

    @pytest.mark.parametrize("duration", ["PT15M", "PT1H30M", "PT12H"])
    def test_session_duration_boundaries(self, duration):
        assert self.validator.validate(config(session_duration=duration)).is_valid

    def test_invalid_managed_policy(self):
        result = self.validator.validate(config(managed_policies=["ReadOnlyAccess"]))

        assert result.errors == ["Invalid managed policy ARN: ReadOnlyAccess"]

    def test_privileged_policy_warning(self):
        result = self.validator.validate(
            config(managed_policies=["arn:aws:iam::aws:policy/AdministratorAccess"])
        )

        assert result.is_valid
        assert result.warnings[0].startswith("Permission set includes highly privileged policies")

    def test_no_policies_warning(self):
        result = self.validator.validate(config(managed_policies=[]))

        assert result.is_valid
        assert "users will have no permissions" in result.warnings[0]

    def test_invalid_inline_policy(self):
        result = self.validator.validate(config(inline_policy="{"))

        assert result.errors == ["Invalid inline policy: Policy must be valid JSON"]

    def test_tag_limits(self):
        result = self.validator.validate(config(tags={"K" * 129: "v", "Owner": "x" * 257}))

        assert len(result.errors) == 2
        assert "exceeds 128 characters" in result.errors[0]
        assert "exceeds 256 characters" in result.errors[1]


class TestPolicyHelpers:
    """Test cases for policy ARN and inline policy checks."""

    @pytest.mark.parametrize(
        "arn, expected",
        [
            (READ_ONLY, True),
            ("arn:aws:iam::aws:policy/job-function/Billing", True),
            ("arn:aws:iam::123456789012:policy/TeamPolicy", True),
            ("arn:aws:iam::1234:policy/TeamPolicy", False),
            ("ReadOnlyAccess", False),
        ],
    )
    def test_policy_arns(self, arn, expected):
        assert is_valid_policy_arn(arn) is expected

    def test_valid_inline_policy(self):
        policy = {
            "Version": "2012-10-17",
            "Statement": [{"Effect": "Allow", "Action": "s3:GetObject", "Resource": "*"}],
        }
        assert validate_inline_policy(json.dumps(policy)) is None

    @pytest.mark.parametrize(
        "policy, message",
        [
            ("not json", "Policy must be valid JSON"),
            ({"Statement": []}, "Policy must include Version field"),
            ({"Version": "2012-10-17"}, "Policy must include Statement array"),
            (
                {"Version": "2012-10-17", "Statement": [{"Effect": "Maybe", "Action": "*"}]},
                "Each statement must have Effect of Allow or Deny",
            ),
            (
                {"Version": "2012-10-17", "Statement": [{"Effect": "Deny"}]},
                "Each statement must have Action or NotAction",
            ),
        ],
    )
    def test_invalid_inline_policies(self, policy, message):
        document = policy if isinstance(policy, str) else json.dumps(policy)
        assert validate_inline_policy(document) == message
