"""AWS IAM Identity Center implementation of the platform client.

boto3 clients are synchronous, so every call runs in the default executor of
the running event loop. Identity provider group ids are mapped to Identity
Store group ids through the ``ExternalIds`` that SCIM provisioning attaches to
synchronized groups.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from botocore.exceptions import ClientError

from ..exceptions import PlatformError, PollingTimeoutError, ResourceNotFoundError, get_error_code
from ..permission_sets.models import PermissionSet, PermissionSetConfig
from .interfaces import AccountAssignment, DeletionStatus, PlatformClient, SyncStatus
from .manager import AWSClientManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

PRINCIPAL_TYPE_GROUP = "GROUP"
TARGET_TYPE_ACCOUNT = "AWS_ACCOUNT"


class IdentityCenterPlatformClient(PlatformClient):
    """Platform client backed by the sso-admin and identitystore APIs."""

    def __init__(
        self,
        client_manager: AWSClientManager,
        instance_arn: str,
        identity_store_id: str,
        account_mapping: Dict[str, str],
        creation_poll_attempts: int = 30,
        creation_poll_interval: float = 2.0,
    ):
        """
        Initialize the platform client.

        Args:
            client_manager: AWS client manager providing boto3 clients
            instance_arn: Identity Center instance ARN
            identity_store_id: Identity Store ID of the instance
            account_mapping: Environment to AWS account ID mapping
            creation_poll_attempts: Maximum polls of an assignment creation request
            creation_poll_interval: Seconds between creation status polls
        """
        self.client_manager = client_manager
        self.instance_arn = instance_arn
        self.identity_store_id = identity_store_id
        self.account_mapping = dict(account_mapping)
        self.creation_poll_attempts = creation_poll_attempts
        self.creation_poll_interval = creation_poll_interval
        self._remote_group_ids: Dict[str, str] = {}

    @property
    def sso_admin(self) -> Any:
        return self.client_manager.get_identity_center_client()

    @property
    def identity_store(self) -> Any:
        return self.client_manager.get_identity_store_client()

    async def _run(self, call: Callable[[], T]) -> T:
        return await asyncio.get_running_loop().run_in_executor(None, call)

    # ------------------------------------------------------------------
    # Group id mapping
    # ------------------------------------------------------------------

    def _scan_identity_store_groups(self) -> Dict[str, str]:
        mapping = {}
        paginator = self.identity_store.get_paginator("list_groups")
        for page in paginator.paginate(IdentityStoreId=self.identity_store_id):
            for group in page.get("Groups", []):
                for external_id in group.get("ExternalIds", []):
                    mapping[external_id["Id"]] = group["GroupId"]
        return mapping

    async def _find_remote_group_id(self, group_id: str) -> Optional[str]:
        if group_id not in self._remote_group_ids:
            self._remote_group_ids.update(await self._run(self._scan_identity_store_groups))
        return self._remote_group_ids.get(group_id)

    async def _require_remote_group_id(self, group_id: str) -> str:
        remote_group_id = await self._find_remote_group_id(group_id)
        if remote_group_id is None:
            raise PlatformError(
                f"Group {group_id} is not synchronized to AWS Identity Center",
                context={"group_id": group_id},
            )
        return remote_group_id

    # ------------------------------------------------------------------
    # Permission sets
    # ------------------------------------------------------------------

    async def create_permission_set(self, config: PermissionSetConfig) -> PermissionSet:
        create_kwargs = {
            "InstanceArn": self.instance_arn,
            "Name": config.name,
            "Description": config.description,
            "SessionDuration": config.session_duration,
        }
        if config.tags:
            create_kwargs["Tags"] = [{"Key": k, "Value": v} for k, v in config.tags.items()]

        response = await self._run(lambda: self.sso_admin.create_permission_set(**create_kwargs))
        permission_set_arn = response["PermissionSet"]["PermissionSetArn"]
        logger.debug(f"Created permission set {config.name}: {permission_set_arn}")

        try:
            for policy_arn in config.managed_policies:
                await self._run(
                    lambda: self.sso_admin.attach_managed_policy_to_permission_set(
                        InstanceArn=self.instance_arn,
                        PermissionSetArn=permission_set_arn,
                        ManagedPolicyArn=policy_arn,
                    )
                )
            if config.inline_policy:
                await self._run(
                    lambda: self.sso_admin.put_inline_policy_to_permission_set(
                        InstanceArn=self.instance_arn,
                        PermissionSetArn=permission_set_arn,
                        InlinePolicy=config.inline_policy,
                    )
                )
        except ClientError as e:
            logger.error(f"Failed to attach policies to {config.name}, deleting it: {e}")
            await self.delete_permission_set(permission_set_arn)
            raise

        return PermissionSet(
            arn=permission_set_arn,
            name=config.name,
            description=config.description,
            session_duration=config.session_duration,
            managed_policies=list(config.managed_policies),
            inline_policy=config.inline_policy,
            tags=dict(config.tags),
        )

    async def describe_permission_set(self, permission_set_arn: str) -> PermissionSet:
        try:
            response = await self._run(
                lambda: self.sso_admin.describe_permission_set(
                    InstanceArn=self.instance_arn, PermissionSetArn=permission_set_arn
                )
            )
        except ClientError as e:
            if get_error_code(e) == "ResourceNotFoundException":
                raise ResourceNotFoundError(
                    f"Permission set {permission_set_arn} not found",
                    context={"permission_set_arn": permission_set_arn},
                ) from e
            raise

        details = response["PermissionSet"]
        policies = await self._run(
            lambda: self.sso_admin.list_managed_policies_in_permission_set(
                InstanceArn=self.instance_arn, PermissionSetArn=permission_set_arn
            )
        )
        inline = await self._run(
            lambda: self.sso_admin.get_inline_policy_for_permission_set(
                InstanceArn=self.instance_arn, PermissionSetArn=permission_set_arn
            )
        )
        return PermissionSet(
            arn=permission_set_arn,
            name=details.get("Name", ""),
            description=details.get("Description", ""),
            session_duration=details.get("SessionDuration"),
            managed_policies=[p["Arn"] for p in policies.get("AttachedManagedPolicies", [])],
            inline_policy=inline.get("InlinePolicy") or None,
        )

    def _list_permission_set_arns(self) -> List[str]:
        arns = []
        paginator = self.sso_admin.get_paginator("list_permission_sets")
        for page in paginator.paginate(InstanceArn=self.instance_arn):
            arns.extend(page.get("PermissionSets", []))
        return arns

    async def list_permission_sets(self) -> List[PermissionSet]:
        permission_sets = []
        for permission_set_arn in await self._run(self._list_permission_set_arns):
            response = await self._run(
                lambda: self.sso_admin.describe_permission_set(
                    InstanceArn=self.instance_arn, PermissionSetArn=permission_set_arn
                )
            )
            details = response["PermissionSet"]
            permission_sets.append(
                PermissionSet(
                    arn=permission_set_arn,
                    name=details.get("Name", ""),
                    description=details.get("Description", ""),
                    session_duration=details.get("SessionDuration"),
                )
            )
        return permission_sets

    async def delete_permission_set(self, permission_set_arn: str) -> None:
        await self._run(
            lambda: self.sso_admin.delete_permission_set(
                InstanceArn=self.instance_arn, PermissionSetArn=permission_set_arn
            )
        )
        logger.info(f"Deleted permission set {permission_set_arn}")

    # ------------------------------------------------------------------
    # Account assignments
    # ------------------------------------------------------------------

    async def assign_group_to_account(
        self, group_id: str, account_id: str, permission_set_arn: str
    ) -> AccountAssignment:
        remote_group_id = await self._require_remote_group_id(group_id)
        response = await self._run(
            lambda: self.sso_admin.create_account_assignment(
                InstanceArn=self.instance_arn,
                TargetId=account_id,
                TargetType=TARGET_TYPE_ACCOUNT,
                PermissionSetArn=permission_set_arn,
                PrincipalType=PRINCIPAL_TYPE_GROUP,
                PrincipalId=remote_group_id,
            )
        )
        status = response["AccountAssignmentCreationStatus"]
        request_id = status.get("RequestId")

        for _ in range(self.creation_poll_attempts):
            if status.get("Status") in ("SUCCEEDED", "FAILED"):
                break
            await asyncio.sleep(self.creation_poll_interval)
            described = await self._run(
                lambda: self.sso_admin.describe_account_assignment_creation_status(
                    InstanceArn=self.instance_arn, AccountAssignmentCreationRequestId=request_id
                )
            )
            status = described["AccountAssignmentCreationStatus"]

        if status.get("Status") == "FAILED":
            raise PlatformError(
                f"AWS assignment creation failed: {status.get('FailureReason', 'unknown reason')}",
                context={"request_id": request_id, "account_id": account_id},
            )
        if status.get("Status") != "SUCCEEDED":
            raise PollingTimeoutError(
                f"AWS assignment creation still {status.get('Status', 'UNKNOWN')} "
                f"after {self.creation_poll_attempts} status checks",
                phase="AWS_ASSIGNMENT",
                context={"request_id": request_id, "account_id": account_id},
            )

        return AccountAssignment(
            principal_id=group_id,
            account_id=account_id,
            permission_set_arn=permission_set_arn,
            status="PROVISIONED",
            request_id=request_id,
        )

    async def delete_account_assignment(
        self, group_id: str, account_id: str, permission_set_arn: str
    ) -> str:
        remote_group_id = await self._find_remote_group_id(group_id)
        if remote_group_id is None:
            raise ResourceNotFoundError(
                f"Group {group_id} not found in AWS Identity Center", context={"group_id": group_id}
            )
        response = await self._run(
            lambda: self.sso_admin.delete_account_assignment(
                InstanceArn=self.instance_arn,
                TargetId=account_id,
                TargetType=TARGET_TYPE_ACCOUNT,
                PermissionSetArn=permission_set_arn,
                PrincipalType=PRINCIPAL_TYPE_GROUP,
                PrincipalId=remote_group_id,
            )
        )
        return response["AccountAssignmentDeletionStatus"]["RequestId"]

    async def get_assignment_deletion_status(self, request_id: str) -> DeletionStatus:
        response = await self._run(
            lambda: self.sso_admin.describe_account_assignment_deletion_status(
                InstanceArn=self.instance_arn, AccountAssignmentDeletionRequestId=request_id
            )
        )
        status = response["AccountAssignmentDeletionStatus"]
        return DeletionStatus(status=status.get("Status", ""), failure_reason=status.get("FailureReason"))

    async def check_group_synchronization_status(self, group_id: str) -> SyncStatus:
        # Re-scan on every check; a group may appear between polls
        self._remote_group_ids.pop(group_id, None)
        remote_group_id = await self._find_remote_group_id(group_id)
        return SyncStatus(is_synced=remote_group_id is not None, remote_group_id=remote_group_id)

    def _list_assignments_for(self, account_id: str, permission_set_arn: str) -> List[Dict[str, Any]]:
        assignments = []
        paginator = self.sso_admin.get_paginator("list_account_assignments")
        for page in paginator.paginate(
            InstanceArn=self.instance_arn, AccountId=account_id, PermissionSetArn=permission_set_arn
        ):
            assignments.extend(page.get("AccountAssignments", []))
        return assignments

    async def list_account_assignments(self) -> List[AccountAssignment]:
        if not self._remote_group_ids:
            self._remote_group_ids.update(await self._run(self._scan_identity_store_groups))
        external_ids = {remote: external for external, remote in self._remote_group_ids.items()}

        permission_set_arns = await self._run(self._list_permission_set_arns)
        results = []
        for account_id in sorted(set(self.account_mapping.values())):
            for permission_set_arn in permission_set_arns:
                for item in await self._run(
                    lambda: self._list_assignments_for(account_id, permission_set_arn)
                ):
                    if item.get("PrincipalType") != PRINCIPAL_TYPE_GROUP:
                        continue
                    results.append(
                        AccountAssignment(
                            principal_id=external_ids.get(item["PrincipalId"], item["PrincipalId"]),
                            account_id=item["AccountId"],
                            permission_set_arn=item["PermissionSetArn"],
                        )
                    )
        return results

