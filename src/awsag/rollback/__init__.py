"""Compensating actions and the rollback engine."""

from .engine import ROLLBACK_PARTIAL_FAILURE, RollbackEngine
from .models import (
    DeleteAssignmentAction,
    DeleteIdentityGroupAction,
    DeletePermissionSetAction,
    RemoveEnterpriseAppAssignmentAction,
    RestoreAssignmentAction,
    RollbackAction,
    RollbackActionType,
    RollbackOutcome,
    RollbackOutcomeType,
    RollbackResult,
    rollback_action_from_dict,
    rollback_action_to_dict,
)

__all__ = [
    "ROLLBACK_PARTIAL_FAILURE",
    "RollbackEngine",
    "DeleteAssignmentAction",
    "DeleteIdentityGroupAction",
    "DeletePermissionSetAction",
    "RemoveEnterpriseAppAssignmentAction",
    "RestoreAssignmentAction",
    "RollbackAction",
    "RollbackActionType",
    "RollbackOutcome",
    "RollbackOutcomeType",
    "RollbackResult",
    "rollback_action_from_dict",
    "rollback_action_to_dict",
]
