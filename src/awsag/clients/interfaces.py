"""Contracts for the identity provider and cloud platform collaborators.

The orchestrator only talks to these interfaces. The identity provider side
(Azure AD groups, enterprise application binding and provisioning) reports
failures through result objects with a ``success`` flag. The platform side
(AWS IAM Identity Center) raises on failure.

Group ids passed to the platform client are identity provider group ids; the
platform client is responsible for translating them to its own principal ids.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from ..permission_sets.models import PermissionSet, PermissionSetConfig


class ProvisioningState(str, Enum):
    """Provisioning status of a group in the enterprise application."""

    NOT_PROVISIONED = "NotProvisioned"
    PROVISIONING = "Provisioning"
    PROVISIONED = "Provisioned"
    FAILED = "Failed"


@dataclass
class ClientResult:
    success: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class GroupCreationResult(ClientResult):
    group_id: Optional[str] = None


@dataclass
class AppBindingResult(ClientResult):
    assignment_id: Optional[str] = None


@dataclass
class ProvisioningStatus:
    status: ProvisioningState
    errors: List[str] = field(default_factory=list)


@dataclass
class IdentityGroup:
    group_id: str
    display_name: str
    description: Optional[str] = None


@dataclass
class GroupValidation:
    """Detailed validation of an identity provider group."""

    is_valid: bool
    exists: bool = True
    member_count: int = 0
    owner_count: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class SyncStatus:
    """Synchronization status of an identity group in the platform identity store."""

    is_synced: bool
    remote_group_id: Optional[str] = None
    last_sync_time: Optional[datetime] = None


@dataclass
class AccountAssignment:
    """An account assignment as reported by the platform."""

    principal_id: str
    account_id: str
    permission_set_arn: str
    status: str = "PROVISIONED"
    request_id: Optional[str] = None


@dataclass
class DeletionStatus:
    status: str
    failure_reason: Optional[str] = None


class IdentityClient(ABC):
    """Identity provider operations used by the orchestrator."""

    @abstractmethod
    async def create_group(self, name: str, description: str) -> GroupCreationResult:
        pass

    @abstractmethod
    async def add_group_owner(self, group_id: str, principal: str) -> ClientResult:
        pass

    @abstractmethod
    async def add_group_member(self, group_id: str, principal: str) -> ClientResult:
        pass

    @abstractmethod
    async def bind_enterprise_app(self, group_id: str, app_id: str) -> AppBindingResult:
        pass

    @abstractmethod
    async def trigger_provisioning(self, group_id: str, app_id: str) -> ClientResult:
        pass

    @abstractmethod
    async def get_provisioning_status(self, group_id: str, app_id: str) -> ProvisioningStatus:
        pass

    @abstractmethod
    async def delete_group(self, group_id: str) -> None:
        """Delete a group. Raises if the group cannot be deleted."""

    @abstractmethod
    async def remove_app_role_assignment(self, group_id: str, assignment_id: str) -> None:
        pass

    @abstractmethod
    async def remove_enterprise_app_binding(self, group_id: str, app_id: str) -> None:
        pass

    @abstractmethod
    async def list_groups(self, name_filter: Optional[str] = None) -> List[IdentityGroup]:
        pass

    @abstractmethod
    async def validate_group_detailed(self, group_id: str) -> GroupValidation:
        pass


class PlatformClient(ABC):
    """Cloud platform operations used by the orchestrator."""

    @abstractmethod
    async def create_permission_set(self, config: PermissionSetConfig) -> PermissionSet:
        """Create a permission set with its policies and tags attached."""

    @abstractmethod
    async def describe_permission_set(self, permission_set_arn: str) -> PermissionSet:
        """Describe a permission set. Raises ResourceNotFoundError if it does not exist."""

    @abstractmethod
    async def list_permission_sets(self) -> List[PermissionSet]:
        pass

    @abstractmethod
    async def delete_permission_set(self, permission_set_arn: str) -> None:
        pass

    @abstractmethod
    async def assign_group_to_account(
        self, group_id: str, account_id: str, permission_set_arn: str
    ) -> AccountAssignment:
        pass

    @abstractmethod
    async def delete_account_assignment(
        self, group_id: str, account_id: str, permission_set_arn: str
    ) -> str:
        """Start deleting an account assignment and return the request id."""

    @abstractmethod
    async def get_assignment_deletion_status(self, request_id: str) -> DeletionStatus:
        pass

    @abstractmethod
    async def check_group_synchronization_status(self, group_id: str) -> SyncStatus:
        pass

    @abstractmethod
    async def list_account_assignments(self) -> List[AccountAssignment]:
        pass
