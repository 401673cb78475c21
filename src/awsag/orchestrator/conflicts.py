"""Conflict detection for proposed account assignments."""

import logging
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..clients.interfaces import PlatformClient, SyncStatus
from ..exceptions import ConflictDetectionError
from ..models import AssignmentRequest, Conflict, ConflictDetectionResult, ConflictType
from ..utils.retry import RetryExecutor

logger = logging.getLogger(__name__)


class ConflictDetector:
    """Finds duplicate and not-synchronized conflicts for a batch of assignments.

    Detection fails closed: if existing assignments or a synchronization
    status cannot be read, a ConflictDetectionError is raised and nothing in
    the batch should proceed.
    """

    def __init__(self, platform_client: PlatformClient, retry_executor: Optional[RetryExecutor] = None):
        self.platform_client = platform_client
        self.retry_executor = retry_executor or RetryExecutor()

    async def detect(self, assignments: Sequence[AssignmentRequest]) -> ConflictDetectionResult:
        """
        Detect conflicts for a batch of proposed assignments.

        Args:
            assignments: Proposed assignments in batch order

        Returns:
            Detected conflicts, in batch order per check

        Raises:
            ConflictDetectionError: If existing state could not be read
        """
        try:
            existing = await self.retry_executor.execute(
                self.platform_client.list_account_assignments, "list account assignments"
            )
            existing_keys = {(a.principal_id, a.account_id, a.permission_set_arn) for a in existing}

            conflicts: List[Conflict] = []
            sync_cache: Dict[str, SyncStatus] = {}

            for assignment in assignments:
                if assignment.key() in existing_keys:
                    conflicts.append(
                        self._conflict(
                            ConflictType.DUPLICATE_ASSIGNMENT,
                            assignment,
                            f"Group {assignment.group_id} is already assigned to permission set "
                            f"{assignment.permission_set_arn} in account {assignment.account_id}",
                        )
                    )

                sync_status = sync_cache.get(assignment.group_id)
                if sync_status is None:
                    sync_status = await self.retry_executor.execute(
                        lambda: self.platform_client.check_group_synchronization_status(
                            assignment.group_id
                        ),
                        "check group synchronization",
                    )
                    sync_cache[assignment.group_id] = sync_status
                if not sync_status.is_synced:
                    conflicts.append(
                        self._conflict(
                            ConflictType.GROUP_NOT_SYNCED,
                            assignment,
                            f"Azure group {assignment.group_id} is not synchronized to AWS Identity Center",
                        )
                    )
        except Exception as e:
            logger.error(f"Conflict detection failed: {e}")
            raise ConflictDetectionError(f"Conflict detection failed: {e}") from e

        seen: Set[Tuple[str, str, str]] = set()
        for assignment in assignments:
            if assignment.key() in seen:
                conflicts.append(
                    self._conflict(
                        ConflictType.DUPLICATE_ASSIGNMENT,
                        assignment,
                        f"Duplicate assignment in batch: Group {assignment.group_id} to permission set "
                        f"{assignment.permission_set_arn} in account {assignment.account_id}",
                    )
                )
            seen.add(assignment.key())

        if conflicts:
            logger.info(f"Detected {len(conflicts)} conflicts in batch of {len(assignments)}")
        return ConflictDetectionResult(conflicts=conflicts)

    @staticmethod
    def _conflict(conflict_type: ConflictType, assignment: AssignmentRequest, message: str) -> Conflict:
        return Conflict(
            conflict_type=conflict_type,
            group_id=assignment.group_id,
            account_id=assignment.account_id,
            permission_set_arn=assignment.permission_set_arn,
            message=message,
        )
