"""Rollback action variants and rollback results."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Union


class RollbackActionType(str, Enum):
    """Kinds of compensating actions."""

    DELETE_ASSIGNMENT = "DELETE_ASSIGNMENT"
    DELETE_PERMISSION_SET = "DELETE_PERMISSION_SET"
    RESTORE_ASSIGNMENT = "RESTORE_ASSIGNMENT"
    DELETE_IDENTITY_GROUP = "DELETE_IDENTITY_GROUP"
    REMOVE_ENTERPRISE_APP_ASSIGNMENT = "REMOVE_ENTERPRISE_APP_ASSIGNMENT"


@dataclass(frozen=True)
class DeleteAssignmentAction:
    """Undo an account assignment created by the workflow."""

    action_type: ClassVar[RollbackActionType] = RollbackActionType.DELETE_ASSIGNMENT

    group_id: str
    account_id: str
    permission_set_arn: str

    def describe(self) -> str:
        return (
            f"delete assignment of group {self.group_id} to {self.permission_set_arn} "
            f"in account {self.account_id}"
        )


@dataclass(frozen=True)
class RestoreAssignmentAction:
    """Re-create an account assignment removed by the workflow."""

    action_type: ClassVar[RollbackActionType] = RollbackActionType.RESTORE_ASSIGNMENT

    group_id: str
    account_id: str
    permission_set_arn: str

    def describe(self) -> str:
        return (
            f"restore assignment of group {self.group_id} to {self.permission_set_arn} "
            f"in account {self.account_id}"
        )


@dataclass(frozen=True)
class DeletePermissionSetAction:
    """Undo a permission set created by the workflow."""

    action_type: ClassVar[RollbackActionType] = RollbackActionType.DELETE_PERMISSION_SET

    permission_set_arn: str

    def describe(self) -> str:
        return f"delete permission set {self.permission_set_arn}"


@dataclass(frozen=True)
class DeleteIdentityGroupAction:
    """Undo an identity provider group created by the workflow."""

    action_type: ClassVar[RollbackActionType] = RollbackActionType.DELETE_IDENTITY_GROUP

    group_id: str

    def describe(self) -> str:
        return f"delete identity group {self.group_id}"


@dataclass(frozen=True)
class RemoveEnterpriseAppAssignmentAction:
    """Undo the binding of a group to the enterprise application."""

    action_type: ClassVar[RollbackActionType] = RollbackActionType.REMOVE_ENTERPRISE_APP_ASSIGNMENT

    group_id: str
    app_id: str
    assignment_id: Optional[str] = None

    def describe(self) -> str:
        return f"remove group {self.group_id} from enterprise application {self.app_id}"


RollbackAction = Union[
    DeleteAssignmentAction,
    RestoreAssignmentAction,
    DeletePermissionSetAction,
    DeleteIdentityGroupAction,
    RemoveEnterpriseAppAssignmentAction,
]

_ACTION_CLASSES = {
    cls.action_type: cls
    for cls in (
        DeleteAssignmentAction,
        RestoreAssignmentAction,
        DeletePermissionSetAction,
        DeleteIdentityGroupAction,
        RemoveEnterpriseAppAssignmentAction,
    )
}


def rollback_action_to_dict(action: RollbackAction) -> Dict[str, Any]:
    data = {"type": action.action_type.value}
    data.update(action.__dict__)
    return data


def rollback_action_from_dict(data: Dict[str, Any]) -> RollbackAction:
    payload = dict(data)
    action_type = RollbackActionType(payload.pop("type"))
    return _ACTION_CLASSES[action_type](**payload)


class RollbackOutcomeType(str, Enum):
    """Classification of one compensating call."""

    SUCCEEDED = "SUCCEEDED"
    ALREADY_ABSENT = "ALREADY_ABSENT"
    IN_USE = "IN_USE"
    FAILED = "FAILED"


@dataclass
class RollbackOutcome:
    action: RollbackAction
    outcome: RollbackOutcomeType
    message: Optional[str] = None


@dataclass
class RollbackResult:
    """Result of replaying a workflow's rollback actions."""

    operation_id: str
    outcomes: List[RollbackOutcome] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def completed_actions(self) -> int:
        return sum(
            1
            for o in self.outcomes
            if o.outcome in (RollbackOutcomeType.SUCCEEDED, RollbackOutcomeType.ALREADY_ABSENT)
        )

    @property
    def failed_actions(self) -> int:
        return sum(1 for o in self.outcomes if o.outcome == RollbackOutcomeType.FAILED)

    @property
    def warnings(self) -> List[str]:
        return [o.message for o in self.outcomes if o.outcome == RollbackOutcomeType.IN_USE]

    @property
    def errors(self) -> List[str]:
        return [o.message for o in self.outcomes if o.outcome == RollbackOutcomeType.FAILED]

    @property
    def success(self) -> bool:
        return self.failed_actions == 0
