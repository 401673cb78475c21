"""In-memory identity provider and platform clients for awsag tests."""

import itertools
from typing import Dict, List, Optional, Set, Tuple

import pytest

from src.awsag.clients.interfaces import (
    AccountAssignment,
    AppBindingResult,
    ClientResult,
    DeletionStatus,
    GroupCreationResult,
    GroupValidation,
    IdentityClient,
    IdentityGroup,
    PlatformClient,
    ProvisioningState,
    ProvisioningStatus,
    SyncStatus,
)
from src.awsag.exceptions import ResourceInUseError, ResourceNotFoundError
from src.awsag.permission_sets.models import PermissionSet, PermissionSetConfig


class _FailureInjection:
    """Raise configured exceptions from named methods.

    ``failures[name]`` is either one exception raised on every call or a list
    of exceptions raised on consecutive calls until the list is empty.
    """

    def __init__(self):
        self.failures: Dict[str, object] = {}
        self.calls: List[Tuple[str, tuple]] = []

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        failure = self.failures.get(name)
        if isinstance(failure, list):
            if failure:
                raise failure.pop(0)
        elif failure is not None:
            raise failure

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def calls_to(self, name: str) -> List[tuple]:
        return [args for call_name, args in self.calls if call_name == name]


class FakeIdentityClient(_FailureInjection, IdentityClient):
    """Identity provider holding groups, owners, members and app bindings in memory."""

    def __init__(self):
        super().__init__()
        self.groups: Dict[str, IdentityGroup] = {}
        self.owners: Dict[str, List[str]] = {}
        self.members: Dict[str, List[str]] = {}
        self.app_bindings: Dict[str, Tuple[str, str]] = {}
        self.invalid_groups: Set[str] = set()
        self.provisioning_states: List[ProvisioningState] = []
        self.create_group_result: Optional[GroupCreationResult] = None
        self.bind_result: Optional[AppBindingResult] = None
        self.trigger_result = ClientResult(success=True)
        self._ids = itertools.count(1)

    def add_group(self, group_id: str, display_name: str) -> IdentityGroup:
        group = IdentityGroup(group_id=group_id, display_name=display_name)
        self.groups[group_id] = group
        self.owners.setdefault(group_id, ["owner@example.com"])
        self.members.setdefault(group_id, [])
        return group

    async def create_group(self, name: str, description: str) -> GroupCreationResult:
        self._record("create_group", name, description)
        if self.create_group_result is not None:
            return self.create_group_result
        group_id = f"azure-group-{next(self._ids)}"
        self.groups[group_id] = IdentityGroup(group_id=group_id, display_name=name, description=description)
        self.owners[group_id] = []
        self.members[group_id] = []
        return GroupCreationResult(success=True, group_id=group_id)

    async def add_group_owner(self, group_id: str, principal: str) -> ClientResult:
        self._record("add_group_owner", group_id, principal)
        self.owners.setdefault(group_id, []).append(principal)
        return ClientResult(success=True)

    async def add_group_member(self, group_id: str, principal: str) -> ClientResult:
        self._record("add_group_member", group_id, principal)
        self.members.setdefault(group_id, []).append(principal)
        return ClientResult(success=True)

    async def bind_enterprise_app(self, group_id: str, app_id: str) -> AppBindingResult:
        self._record("bind_enterprise_app", group_id, app_id)
        if self.bind_result is not None:
            return self.bind_result
        assignment_id = f"app-role-{next(self._ids)}"
        self.app_bindings[assignment_id] = (group_id, app_id)
        return AppBindingResult(success=True, assignment_id=assignment_id)

    async def trigger_provisioning(self, group_id: str, app_id: str) -> ClientResult:
        self._record("trigger_provisioning", group_id, app_id)
        return self.trigger_result

    async def get_provisioning_status(self, group_id: str, app_id: str) -> ProvisioningStatus:
        self._record("get_provisioning_status", group_id, app_id)
        if self.provisioning_states:
            return ProvisioningStatus(status=self.provisioning_states.pop(0))
        return ProvisioningStatus(status=ProvisioningState.PROVISIONED)

    async def delete_group(self, group_id: str) -> None:
        self._record("delete_group", group_id)
        if group_id not in self.groups:
            raise ResourceNotFoundError(f"Group {group_id} not found")
        del self.groups[group_id]

    async def remove_app_role_assignment(self, group_id: str, assignment_id: str) -> None:
        self._record("remove_app_role_assignment", group_id, assignment_id)
        if assignment_id not in self.app_bindings:
            raise ResourceNotFoundError(f"App role assignment {assignment_id} not found")
        del self.app_bindings[assignment_id]

    async def remove_enterprise_app_binding(self, group_id: str, app_id: str) -> None:
        self._record("remove_enterprise_app_binding", group_id, app_id)
        matches = [k for k, v in self.app_bindings.items() if v == (group_id, app_id)]
        if not matches:
            raise ResourceNotFoundError(f"No binding of {group_id} to {app_id} found")
        for key in matches:
            del self.app_bindings[key]

    async def list_groups(self, name_filter: Optional[str] = None) -> List[IdentityGroup]:
        self._record("list_groups", name_filter)
        return [
            g for g in self.groups.values() if not name_filter or name_filter in g.display_name
        ]

    async def validate_group_detailed(self, group_id: str) -> GroupValidation:
        self._record("validate_group_detailed", group_id)
        if group_id not in self.groups:
            return GroupValidation(is_valid=False, exists=False, errors=[f"Group {group_id} not found"])
        if group_id in self.invalid_groups:
            return GroupValidation(is_valid=False, errors=["Group has no owners"])
        return GroupValidation(
            is_valid=True,
            member_count=len(self.members.get(group_id, [])),
            owner_count=len(self.owners.get(group_id, [])),
        )


class FakePlatformClient(_FailureInjection, PlatformClient):
    """Identity Center stand-in holding permission sets and account assignments in memory."""

    def __init__(self):
        super().__init__()
        self.permission_sets: Dict[str, PermissionSet] = {}
        self.assignments: List[AccountAssignment] = []
        self.unsynced_groups: Set[str] = set()
        self.deletion_statuses: Dict[str, List[DeletionStatus]] = {}
        self.creation_statuses: Dict[str, str] = {}
        self._ids = itertools.count(1)

    def add_permission_set(self, name: str) -> PermissionSet:
        arn = f"arn:aws:sso:::permissionSet/ssoins-test/ps-{next(self._ids):04d}"
        permission_set = PermissionSet(arn=arn, name=name)
        self.permission_sets[arn] = permission_set
        return permission_set

    def add_assignment(self, group_id: str, account_id: str, permission_set_arn: str) -> None:
        self.assignments.append(AccountAssignment(group_id, account_id, permission_set_arn))

    def has_assignment(self, group_id: str, account_id: str, permission_set_arn: str) -> bool:
        return any(
            (a.principal_id, a.account_id, a.permission_set_arn)
            == (group_id, account_id, permission_set_arn)
            for a in self.assignments
        )

    async def create_permission_set(self, config: PermissionSetConfig) -> PermissionSet:
        self._record("create_permission_set", config)
        arn = f"arn:aws:sso:::permissionSet/ssoins-test/ps-{next(self._ids):04d}"
        permission_set = PermissionSet(
            arn=arn,
            name=config.name,
            description=config.description,
            session_duration=config.session_duration,
            managed_policies=list(config.managed_policies),
            inline_policy=config.inline_policy,
            tags=dict(config.tags),
        )
        self.permission_sets[arn] = permission_set
        return permission_set

    async def describe_permission_set(self, permission_set_arn: str) -> PermissionSet:
        self._record("describe_permission_set", permission_set_arn)
        if permission_set_arn not in self.permission_sets:
            raise ResourceNotFoundError(f"Permission set {permission_set_arn} not found")
        return self.permission_sets[permission_set_arn]

    async def list_permission_sets(self) -> List[PermissionSet]:
        self._record("list_permission_sets")
        return list(self.permission_sets.values())

    async def delete_permission_set(self, permission_set_arn: str) -> None:
        self._record("delete_permission_set", permission_set_arn)
        if permission_set_arn not in self.permission_sets:
            raise ResourceNotFoundError(f"Permission set {permission_set_arn} not found")
        if any(a.permission_set_arn == permission_set_arn for a in self.assignments):
            raise ResourceInUseError(f"Permission set {permission_set_arn} is in use")
        del self.permission_sets[permission_set_arn]

    async def assign_group_to_account(
        self, group_id: str, account_id: str, permission_set_arn: str
    ) -> AccountAssignment:
        self._record("assign_group_to_account", group_id, account_id, permission_set_arn)
        assignment = AccountAssignment(
            group_id,
            account_id,
            permission_set_arn,
            status=self.creation_statuses.get(group_id, "PROVISIONED"),
        )
        self.assignments.append(assignment)
        return assignment

    async def delete_account_assignment(
        self, group_id: str, account_id: str, permission_set_arn: str
    ) -> str:
        self._record("delete_account_assignment", group_id, account_id, permission_set_arn)
        if not self.has_assignment(group_id, account_id, permission_set_arn):
            raise ResourceNotFoundError(f"Assignment of {group_id} in {account_id} not found")
        self.assignments = [
            a
            for a in self.assignments
            if (a.principal_id, a.account_id, a.permission_set_arn)
            != (group_id, account_id, permission_set_arn)
        ]
        return f"delete-request-{next(self._ids)}"

    async def get_assignment_deletion_status(self, request_id: str) -> DeletionStatus:
        self._record("get_assignment_deletion_status", request_id)
        statuses = self.deletion_statuses.get(request_id)
        if statuses:
            return statuses.pop(0)
        return DeletionStatus(status="SUCCEEDED")

    async def check_group_synchronization_status(self, group_id: str) -> SyncStatus:
        self._record("check_group_synchronization_status", group_id)
        if group_id in self.unsynced_groups:
            return SyncStatus(is_synced=False)
        return SyncStatus(is_synced=True, remote_group_id=f"aws-{group_id}")

    async def list_account_assignments(self) -> List[AccountAssignment]:
        self._record("list_account_assignments")
        return list(self.assignments)


@pytest.fixture
def identity_client():
    """Empty in-memory identity provider client."""
    return FakeIdentityClient()


@pytest.fixture
def platform_client():
    """Empty in-memory platform client."""
    return FakePlatformClient()
