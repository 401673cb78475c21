"""Tests for rollback action models and results."""

import pytest

from src.awsag.rollback.models import (
    DeleteAssignmentAction,
    DeleteIdentityGroupAction,
    DeletePermissionSetAction,
    RemoveEnterpriseAppAssignmentAction,
    RestoreAssignmentAction,
    RollbackActionType,
    RollbackOutcome,
    RollbackOutcomeType,
    RollbackResult,
    rollback_action_from_dict,
    rollback_action_to_dict,
)


class TestRollbackActions:
    """Test cases for the rollback action variants."""

    def test_action_types(self):
        assert DeleteAssignmentAction("g", "a", "p").action_type == RollbackActionType.DELETE_ASSIGNMENT
        assert RestoreAssignmentAction("g", "a", "p").action_type == RollbackActionType.RESTORE_ASSIGNMENT
        assert DeletePermissionSetAction("p").action_type == RollbackActionType.DELETE_PERMISSION_SET
        assert DeleteIdentityGroupAction("g").action_type == RollbackActionType.DELETE_IDENTITY_GROUP
        assert (
            RemoveEnterpriseAppAssignmentAction("g", "app").action_type
            == RollbackActionType.REMOVE_ENTERPRISE_APP_ASSIGNMENT
        )

    def test_actions_are_immutable(self):
        action = DeleteIdentityGroupAction(group_id="group-1")
        with pytest.raises(AttributeError):
            action.group_id = "group-2"

    def test_to_dict_carries_type_tag(self):
        action = RemoveEnterpriseAppAssignmentAction(
            group_id="group-1", app_id="app-1", assignment_id="binding-1"
        )
        assert rollback_action_to_dict(action) == {
            "type": "REMOVE_ENTERPRISE_APP_ASSIGNMENT",
            "group_id": "group-1",
            "app_id": "app-1",
            "assignment_id": "binding-1",
        }

    def test_from_dict_restores_variant(self):
        action = rollback_action_from_dict(
            {
                "type": "DELETE_ASSIGNMENT",
                "group_id": "group-1",
                "account_id": "111111111111",
                "permission_set_arn": "arn:aws:sso:::permissionSet/ssoins-1/ps-1",
            }
        )
        assert action == DeleteAssignmentAction(
            group_id="group-1",
            account_id="111111111111",
            permission_set_arn="arn:aws:sso:::permissionSet/ssoins-1/ps-1",
        )

    def test_from_dict_rejects_unknown_type(self):
        with pytest.raises(ValueError):
            rollback_action_from_dict({"type": "DROP_DATABASE"})

    def test_describe(self):
        assert DeletePermissionSetAction("arn:ps").describe() == "delete permission set arn:ps"
        assert "enterprise application app-1" in RemoveEnterpriseAppAssignmentAction(
            "group-1", "app-1"
        ).describe()


class TestRollbackResult:
    """Test cases for RollbackResult counters."""

    def test_counts_by_outcome(self):
        action = DeleteIdentityGroupAction("group-1")
        result = RollbackResult(
            operation_id="op-1",
            outcomes=[
                RollbackOutcome(action, RollbackOutcomeType.SUCCEEDED),
                RollbackOutcome(action, RollbackOutcomeType.ALREADY_ABSENT, "gone"),
                RollbackOutcome(action, RollbackOutcomeType.IN_USE, "still referenced"),
                RollbackOutcome(action, RollbackOutcomeType.FAILED, "boom"),
            ],
        )

        assert result.completed_actions == 2
        assert result.failed_actions == 1
        assert result.warnings == ["still referenced"]
        assert result.errors == ["boom"]
        assert not result.success

    def test_empty_result_is_success(self):
        assert RollbackResult(operation_id="op-1").success
