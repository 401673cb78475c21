"""Rollback engine that replays compensating actions in reverse order."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional

from rich.console import Console

from ..clients.interfaces import IdentityClient, PlatformClient
from ..exceptions import PlatformError, is_resource_absent, is_resource_in_use
from ..models import OperationError, WorkflowState
from ..utils.retry import RetryExecutor
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
)

console = Console()

ROLLBACK_PARTIAL_FAILURE = "ROLLBACK_PARTIAL_FAILURE"


class RollbackEngine:
    """Undoes the side effects of a workflow instance.

    Actions are replayed newest first. Missing resources count as success,
    resources that are still referenced produce a warning, and any other
    failure is collected without stopping the remaining actions. ``rollback``
    never raises.
    """

    def __init__(
        self,
        identity_client: IdentityClient,
        platform_client: PlatformClient,
        retry_executor: Optional[RetryExecutor] = None,
        deletion_poll_attempts: int = 30,
        deletion_poll_interval: float = 10.0,
        deletion_status_error_tolerance: int = 3,
    ):
        """
        Initialize the rollback engine.

        Args:
            identity_client: Identity provider client
            platform_client: Cloud platform client
            retry_executor: Retry executor wrapping every compensating call
            deletion_poll_attempts: Maximum polls of an assignment deletion request
            deletion_poll_interval: Seconds between deletion status polls
            deletion_status_error_tolerance: Status check errors tolerated while polling
        """
        self.identity_client = identity_client
        self.platform_client = platform_client
        self.retry_executor = retry_executor or RetryExecutor()
        self.deletion_poll_attempts = deletion_poll_attempts
        self.deletion_poll_interval = deletion_poll_interval
        self.deletion_status_error_tolerance = deletion_status_error_tolerance
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        self._handlers: Dict[RollbackActionType, Callable[[RollbackAction], Awaitable[None]]] = {
            RollbackActionType.DELETE_ASSIGNMENT: self._delete_assignment,
            RollbackActionType.RESTORE_ASSIGNMENT: self._restore_assignment,
            RollbackActionType.DELETE_PERMISSION_SET: self._delete_permission_set,
            RollbackActionType.DELETE_IDENTITY_GROUP: self._delete_identity_group,
            RollbackActionType.REMOVE_ENTERPRISE_APP_ASSIGNMENT: self._remove_enterprise_app,
        }

    async def rollback(self, state: WorkflowState) -> RollbackResult:
        """Replay the rollback actions of a workflow state in LIFO order.

        Args:
            state: Workflow state whose actions should be undone

        Returns:
            Per-action outcomes. A ROLLBACK_PARTIAL_FAILURE error is appended
            to ``state.errors`` when any action failed.
        """
        start = time.monotonic()
        result = RollbackResult(operation_id=state.operation_id)
        actions = list(reversed(state.rollback_actions))
        self.logger.info(
            f"Starting rollback for operation {state.operation_id} with {len(actions)} actions"
        )

        for action in actions:
            result.outcomes.append(await self._run_action(action))

        result.duration_ms = int((time.monotonic() - start) * 1000)

        if result.failed_actions:
            error = OperationError(
                code=ROLLBACK_PARTIAL_FAILURE,
                message=f"{result.failed_actions} rollback actions failed: {'; '.join(result.errors)}",
                context={
                    "rollback_errors": result.errors,
                    "successful_rollbacks": result.completed_actions,
                    "total_actions": len(actions),
                },
            )
            state.record_error(error)
            self.logger.error(
                f"Rollback for operation {state.operation_id} completed with "
                f"{result.failed_actions} failures"
            )
        else:
            self.logger.info(
                f"Rollback for operation {state.operation_id} completed "
                f"({result.completed_actions}/{len(actions)} actions)"
            )
        return result

    async def _run_action(self, action: RollbackAction) -> RollbackOutcome:
        self.logger.debug(f"Executing rollback action: {action.action_type.value}")
        handler = self._handlers[action.action_type]
        try:
            await handler(action)
            return RollbackOutcome(action=action, outcome=RollbackOutcomeType.SUCCEEDED)
        except Exception as e:
            if is_resource_absent(e):
                self.logger.info(f"Already absent, nothing to {action.describe()}")
                return RollbackOutcome(
                    action=action, outcome=RollbackOutcomeType.ALREADY_ABSENT, message=str(e)
                )
            if is_resource_in_use(e):
                message = f"Could not {action.describe()}: still in use, manual cleanup required"
                console.print(f"[yellow]Warning: {message}[/yellow]")
                self.logger.warning(message)
                return RollbackOutcome(action=action, outcome=RollbackOutcomeType.IN_USE, message=message)

            message = f"{action.action_type.value}: {e}"
            self.logger.error(f"Failed to {action.describe()}: {e}")
            return RollbackOutcome(action=action, outcome=RollbackOutcomeType.FAILED, message=message)

    async def _delete_assignment(self, action: DeleteAssignmentAction) -> None:
        request_id = await self.retry_executor.execute(
            lambda: self.platform_client.delete_account_assignment(
                action.group_id, action.account_id, action.permission_set_arn
            ),
            "delete account assignment",
        )
        await self.wait_for_deletion(request_id)

    async def wait_for_deletion(self, request_id: str) -> None:
        """Poll an assignment deletion request until it finishes.

        Raises:
            PlatformError: If the deletion failed, status checks kept failing,
                or the request did not finish within the polling budget
        """
        status_errors = 0
        for attempt in range(1, self.deletion_poll_attempts + 1):
            try:
                status = await self.platform_client.get_assignment_deletion_status(request_id)
            except Exception as e:
                status_errors += 1
                self.logger.debug(f"Deletion status check {attempt} for {request_id} failed: {e}")
                if status_errors > self.deletion_status_error_tolerance:
                    raise PlatformError(
                        f"Unable to check assignment deletion status for {request_id}: {e}",
                        context={"request_id": request_id},
                    ) from e
            else:
                if status.status == "SUCCEEDED":
                    return
                if status.status == "FAILED":
                    raise PlatformError(
                        f"AWS assignment deletion failed: {status.failure_reason or 'unknown reason'}",
                        context={"request_id": request_id},
                    )

            if attempt < self.deletion_poll_attempts:
                await asyncio.sleep(self.deletion_poll_interval)

        raise PlatformError(
            f"Assignment deletion {request_id} did not complete after {self.deletion_poll_attempts} checks",
            code="AWS_ASSIGNMENT_DELETION_TIMEOUT",
            context={"request_id": request_id},
        )

    async def _restore_assignment(self, action: RestoreAssignmentAction) -> None:
        await self.retry_executor.execute(
            lambda: self.platform_client.assign_group_to_account(
                action.group_id, action.account_id, action.permission_set_arn
            ),
            "restore account assignment",
        )

    async def _delete_permission_set(self, action: DeletePermissionSetAction) -> None:
        await self.retry_executor.execute(
            lambda: self.platform_client.delete_permission_set(action.permission_set_arn),
            "delete permission set",
        )

    async def _delete_identity_group(self, action: DeleteIdentityGroupAction) -> None:
        await self.retry_executor.execute(
            lambda: self.identity_client.delete_group(action.group_id), "delete identity group"
        )

    async def _remove_enterprise_app(self, action: RemoveEnterpriseAppAssignmentAction) -> None:
        if action.assignment_id:
            await self.retry_executor.execute(
                lambda: self.identity_client.remove_app_role_assignment(
                    action.group_id, action.assignment_id
                ),
                "remove app role assignment",
            )
        else:
            await self.retry_executor.execute(
                lambda: self.identity_client.remove_enterprise_app_binding(
                    action.group_id, action.app_id
                ),
                "remove enterprise app binding",
            )
