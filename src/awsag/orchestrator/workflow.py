"""Assignment orchestrator.

Drives access grant and assignment requests through their workflow phases,
registering a compensating action after every phase that changes remote state
and replaying those actions when a later phase fails.

Access grant phases run strictly in order:

    VALIDATION -> AZURE_GROUP_CREATION -> AZURE_GROUP_MEMBERS ->
    ENTERPRISE_APP_CONFIG -> PROVISIONING -> AWS_SYNC_VERIFICATION ->
    AWS_PERMISSION_SET_CREATION -> AWS_ACCOUNT_ASSIGNMENT ->
    END_TO_END_VALIDATION -> COMPLETED

Attaching an existing group to an existing permission set uses the shorter
VALIDATION -> AZURE_VALIDATION -> CONFLICT_CHECK -> AWS_ASSIGNMENT ->
VERIFICATION machine.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..clients.interfaces import (
    AccountAssignment,
    GroupCreationResult,
    IdentityClient,
    PlatformClient,
    ProvisioningState,
)
from ..exceptions import (
    AccessGrantError,
    AccessGrantValidationError,
    ConfigurationError,
    ConflictDetectedError,
    IdentityProviderError,
    OperationAlreadyRolledBackError,
    OperationNotFoundError,
    OperationStateError,
    PlatformError,
    PollingTimeoutError,
    ValidationError,
    WorkflowStateNotFoundError,
    is_resource_absent,
)
from ..models import (
    AccessGrantReport,
    AccessGrantRequest,
    AccessGrantResult,
    AssignmentOperation,
    AssignmentReport,
    AssignmentRequest,
    AssignmentStatus,
    Environment,
    GroupAssignment,
    GroupReport,
    OperationError,
    OperationKind,
    OperationStatus,
    PermissionSetReport,
    PermissionSource,
    SynchronizationReport,
    TemplatePermissions,
    ValidationResults,
    WorkflowPhase,
    WorkflowState,
)
from ..permission_sets.manager import PermissionSetManager
from ..rollback.engine import RollbackEngine
from ..rollback.models import (
    DeleteAssignmentAction,
    DeleteIdentityGroupAction,
    DeletePermissionSetAction,
    RemoveEnterpriseAppAssignmentAction,
    RestoreAssignmentAction,
    RollbackResult,
)
from ..storage.history import InMemoryOperationHistoryStore, OperationFilter, OperationHistoryStore
from ..storage.workflow_state import InMemoryWorkflowStateStore, WorkflowStateStore
from ..utils.config import OrchestratorConfig
from ..utils.deadline import Deadline
from ..utils.retry import RetryExecutor
from ..utils.validators import (
    generate_group_name,
    is_valid_account_id,
    is_valid_email,
    parse_group_name,
    validate_environment,
)
from .conflicts import ConflictDetector

ASSIGNMENT_FAILED = "ASSIGNMENT_FAILED"
BULK_ASSIGNMENT_FAILED = "BULK_ASSIGNMENT_FAILED"
ACCESS_GRANT_FAILED = "ACCESS_GRANT_FAILED"
ASSIGNMENT_REMOVAL_FAILED = "ASSIGNMENT_REMOVAL_FAILED"
CONFLICT_DETECTION_FAILED = "CONFLICT_DETECTION_FAILED"
END_TO_END_VALIDATION_INCOMPLETE = "END_TO_END_VALIDATION_INCOMPLETE"

PROVISIONED_ASSIGNMENT_STATUS = "PROVISIONED"


@dataclass
class _GrantContext:
    """Identifiers produced by the access grant phases."""

    request: AccessGrantRequest
    environment: Optional[Environment] = None
    group_name: str = ""
    account_id: str = ""
    owners: List[str] = field(default_factory=list)
    permission_source: Optional[PermissionSource] = None
    group_id: str = ""
    app_assignment_id: Optional[str] = None
    permission_set_arn: str = ""


@dataclass
class _BulkItemOutcome:
    index: int
    success: bool
    created: bool
    error: Optional[Exception] = None
    phase: Optional[WorkflowPhase] = None


class AssignmentOrchestrator:
    """Workflow engine for access grants and account assignments."""

    def __init__(
        self,
        identity_client: IdentityClient,
        platform_client: PlatformClient,
        config: Optional[OrchestratorConfig] = None,
        history_store: Optional[OperationHistoryStore] = None,
        workflow_states: Optional[WorkflowStateStore] = None,
        retry_executor: Optional[RetryExecutor] = None,
        conflict_detector: Optional[ConflictDetector] = None,
        rollback_engine: Optional[RollbackEngine] = None,
        permission_set_manager: Optional[PermissionSetManager] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            identity_client: Identity provider client
            platform_client: Cloud platform client
            config: Orchestrator settings
            history_store: Store for terminal operation records
            workflow_states: Store for workflow states keyed by operation id
            retry_executor: Retry executor wrapping every remote call
            conflict_detector: Conflict detector, built from the platform client if omitted
            rollback_engine: Rollback engine, built from the clients if omitted
            permission_set_manager: Permission set manager, built from the platform client if omitted
        """
        self.identity_client = identity_client
        self.platform_client = platform_client
        self.config = config or OrchestratorConfig()
        self.history_store = history_store or InMemoryOperationHistoryStore()
        self.workflow_states = workflow_states or InMemoryWorkflowStateStore()
        self.retry_executor = retry_executor or RetryExecutor()
        self.conflict_detector = conflict_detector or ConflictDetector(
            platform_client, self.retry_executor
        )
        self.rollback_engine = rollback_engine or RollbackEngine(
            identity_client,
            platform_client,
            self.retry_executor,
            deletion_poll_attempts=self.config.deletion_poll_attempts,
            deletion_poll_interval=self.config.deletion_poll_interval,
            deletion_status_error_tolerance=self.config.deletion_status_error_tolerance,
        )
        self.permission_set_manager = permission_set_manager or PermissionSetManager(
            platform_client,
            retry_executor=self.retry_executor,
            default_session_duration=self.config.default_session_duration,
        )
        self._active_operations: Dict[str, AssignmentOperation] = {}
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    # ------------------------------------------------------------------
    # Workflow plumbing
    # ------------------------------------------------------------------

    def _open_workflow(self, operation: AssignmentOperation) -> WorkflowState:
        state = WorkflowState(operation_id=operation.operation_id)
        self.workflow_states.save(state)
        self._active_operations[operation.operation_id] = operation
        self.logger.info(f"Started {operation.kind.value} operation {operation.operation_id}")
        return state

    async def _call(self, action: Callable[[], Awaitable[Any]], label: str) -> Any:
        return await self.retry_executor.execute(action, label)

    async def _run_phase(
        self,
        state: WorkflowState,
        phase: WorkflowPhase,
        step: Callable[[], Awaitable[Any]],
        deadline: Deadline,
        failure_code: Optional[str] = None,
    ) -> Any:
        """Run one phase, recording a phase-tagged error if it fails."""
        state.enter(phase)
        self.logger.debug(f"Operation {state.operation_id}: entering {phase.value}")
        try:
            deadline.check(phase.value)
            result = await deadline.run(step(), phase.value)
        except Exception as e:
            state.record_error(
                OperationError.from_exception(e, self._phase_error_code(phase, e, failure_code), phase)
            )
            self.logger.error(f"Operation {state.operation_id}: {phase.value} failed: {e}")
            raise
        state.complete_phase(phase)
        return result

    @staticmethod
    def _phase_error_code(phase: WorkflowPhase, error: Exception, failure_code: Optional[str]) -> str:
        if isinstance(error, PollingTimeoutError):
            return f"{phase.value}_TIMEOUT"
        if isinstance(error, ConflictDetectedError):
            return error.code
        return failure_code or f"{phase.value}_FAILED"

    async def _rollback_after_failure(self, operation: AssignmentOperation, state: WorkflowState) -> None:
        before = len(state.errors)
        await self.rollback_engine.rollback(state)
        operation.errors.extend(state.errors[before:])

    def _finish(
        self, operation: AssignmentOperation, state: WorkflowState, status: OperationStatus
    ) -> None:
        operation.finish(status)
        state.enter(WorkflowPhase.COMPLETED if status == OperationStatus.COMPLETED else WorkflowPhase.FAILED)
        self._active_operations.pop(operation.operation_id, None)
        self.logger.info(f"Operation {operation.operation_id} finished with status {status.value}")

    def _persist_failed(self, operation: AssignmentOperation) -> None:
        try:
            self.history_store.add_operation(operation)
        except Exception as e:
            self.logger.error(f"Could not record failed operation {operation.operation_id}: {e}")

    # ------------------------------------------------------------------
    # Single and bulk assignments
    # ------------------------------------------------------------------

    async def create_assignment(
        self, assignment: AssignmentRequest, timeout: Optional[float] = None
    ) -> AssignmentOperation:
        """
        Attach an existing identity group to an existing permission set in one account.

        Args:
            assignment: Proposed assignment
            timeout: Overall deadline in seconds

        Returns:
            Terminal operation record. Failures are reported in the record, not raised.
        """
        operation = AssignmentOperation.create(
            OperationKind.CREATE, [GroupAssignment.from_request(assignment)]
        )
        state = self._open_workflow(operation)
        deadline = Deadline(timeout)

        try:
            await self._run_phase(
                state,
                WorkflowPhase.VALIDATION,
                lambda: self._validate_assignment_requests([assignment]),
                deadline,
            )
            await self._run_phase(
                state,
                WorkflowPhase.AZURE_VALIDATION,
                lambda: self._validate_identity_group(assignment.group_id),
                deadline,
            )
            await self._run_phase(
                state,
                WorkflowPhase.CONFLICT_CHECK,
                lambda: self._check_conflicts([assignment], "Assignment conflicts detected"),
                deadline,
                failure_code=CONFLICT_DETECTION_FAILED,
            )
            await self._run_phase(
                state,
                WorkflowPhase.AWS_ASSIGNMENT,
                lambda: self._execute_assignment(assignment, state),
                deadline,
            )
            await self._run_phase(
                state,
                WorkflowPhase.VERIFICATION,
                lambda: self._verify_assignment(assignment),
                deadline,
            )
        except Exception as e:
            operation.errors.extend(state.errors)
            operation.errors.append(OperationError.from_exception(e, ASSIGNMENT_FAILED))
            await self._rollback_after_failure(operation, state)
            operation.fail_pending_assignments()
            self._finish(operation, state, OperationStatus.FAILED)
            self._persist_failed(operation)
            return operation

        operation.assignments[0].status = AssignmentStatus.ACTIVE
        operation.assignments[0].last_validated = datetime.now(timezone.utc)
        self._finish(operation, state, OperationStatus.COMPLETED)
        self.history_store.add_operation(operation)
        return operation

    async def bulk_assign(
        self, assignments: Sequence[AssignmentRequest], timeout: Optional[float] = None
    ) -> AssignmentOperation:
        """
        Create many assignments with partial-failure semantics.

        All groups are validated and the whole batch is conflict-checked before
        anything is created. After that each item succeeds or fails on its own.
        Items run on a worker pool bounded by ``bulk_max_concurrency``; results
        and errors are always recorded in input order.

        Partial failures are not rolled back automatically. Every item that was
        created gets a compensating action so ``rollback_operation`` can undo
        the whole batch later.

        Args:
            assignments: Proposed assignments
            timeout: Overall deadline in seconds

        Returns:
            Terminal operation record. COMPLETED when at least one item succeeded.
        """
        assignments = list(assignments)
        operation = AssignmentOperation.create(
            OperationKind.CREATE, [GroupAssignment.from_request(a) for a in assignments]
        )
        state = self._open_workflow(operation)
        deadline = Deadline(timeout)

        try:
            await self._run_phase(
                state,
                WorkflowPhase.VALIDATION,
                lambda: self._validate_assignment_requests(assignments),
                deadline,
            )
            await self._run_phase(
                state,
                WorkflowPhase.AZURE_VALIDATION,
                lambda: self._validate_identity_groups([a.group_id for a in assignments]),
                deadline,
            )
            await self._run_phase(
                state,
                WorkflowPhase.CONFLICT_CHECK,
                lambda: self._check_conflicts(assignments, "Bulk assignment conflicts detected"),
                deadline,
                failure_code=CONFLICT_DETECTION_FAILED,
            )
        except Exception as e:
            operation.errors.extend(state.errors)
            operation.errors.append(OperationError.from_exception(e, BULK_ASSIGNMENT_FAILED))
            await self._rollback_after_failure(operation, state)
            operation.fail_pending_assignments()
            self._finish(operation, state, OperationStatus.FAILED)
            self._persist_failed(operation)
            return operation

        state.enter(WorkflowPhase.AWS_ASSIGNMENT)
        semaphore = asyncio.Semaphore(self.config.bulk_max_concurrency)
        outcomes = await asyncio.gather(
            *(
                self._run_bulk_item(index, assignment, semaphore, deadline)
                for index, assignment in enumerate(assignments)
            )
        )

        for outcome in outcomes:
            request = assignments[outcome.index]
            record = operation.assignments[outcome.index]
            if outcome.created:
                state.register_rollback(
                    DeleteAssignmentAction(
                        group_id=request.group_id,
                        account_id=request.account_id,
                        permission_set_arn=request.permission_set_arn,
                    )
                )
            if outcome.success:
                record.status = AssignmentStatus.ACTIVE
                record.last_validated = datetime.now(timezone.utc)
                continue

            record.status = AssignmentStatus.FAILED
            item_context = {
                "assignment_index": outcome.index,
                "group_id": request.group_id,
                "account_id": request.account_id,
                "permission_set_arn": request.permission_set_arn,
            }
            state.record_error(
                OperationError.from_exception(
                    outcome.error,
                    self._phase_error_code(outcome.phase, outcome.error, None),
                    outcome.phase,
                    item_context,
                )
            )
            operation.errors.append(
                OperationError.from_exception(outcome.error, ASSIGNMENT_FAILED, outcome.phase, item_context)
            )

        state.complete_phase(WorkflowPhase.AWS_ASSIGNMENT)
        state.complete_phase(WorkflowPhase.VERIFICATION)

        succeeded = sum(1 for outcome in outcomes if outcome.success)
        if deadline.expired:
            state.record_error(
                OperationError(
                    code=f"{WorkflowPhase.AWS_ASSIGNMENT.value}_TIMEOUT",
                    message=f"Operation deadline of {deadline.seconds}s exceeded during bulk assignment",
                    phase=WorkflowPhase.AWS_ASSIGNMENT.value,
                )
            )
            operation.errors.append(state.errors[-1])
            succeeded = 0
            for record in operation.assignments:
                record.status = AssignmentStatus.FAILED

        self.logger.info(
            f"Bulk operation {operation.operation_id}: {succeeded}/{len(assignments)} assignments succeeded"
        )
        if succeeded:
            self._finish(operation, state, OperationStatus.COMPLETED)
            self.history_store.add_operation(operation)
        else:
            await self._rollback_after_failure(operation, state)
            self._finish(operation, state, OperationStatus.FAILED)
            self._persist_failed(operation)
        return operation

    async def _run_bulk_item(
        self,
        index: int,
        assignment: AssignmentRequest,
        semaphore: asyncio.Semaphore,
        deadline: Deadline,
    ) -> _BulkItemOutcome:
        async with semaphore:
            created = False
            phase = WorkflowPhase.AWS_ASSIGNMENT
            try:
                deadline.check(phase.value)
                result = await deadline.run(
                    self._call(
                        lambda: self.platform_client.assign_group_to_account(
                            assignment.group_id, assignment.account_id, assignment.permission_set_arn
                        ),
                        "assign group to account",
                    ),
                    phase.value,
                )
                created = True
                self._require_provisioned(result)
                phase = WorkflowPhase.VERIFICATION
                await deadline.run(self._verify_assignment(assignment), phase.value)
            except Exception as e:
                if isinstance(e, PollingTimeoutError) and phase == WorkflowPhase.AWS_ASSIGNMENT:
                    created = True
                self.logger.warning(f"Bulk item {index} failed during {phase.value}: {e}")
                return _BulkItemOutcome(index=index, success=False, created=created, error=e, phase=phase)
            return _BulkItemOutcome(index=index, success=True, created=True)

    async def remove_assignment(
        self, assignment: AssignmentRequest, timeout: Optional[float] = None
    ) -> AssignmentOperation:
        """
        Delete an existing account assignment.

        The deletion registers a restore action, so rolling back the
        operation re-creates the assignment.

        Args:
            assignment: Assignment to delete
            timeout: Overall deadline in seconds

        Returns:
            Terminal DELETE operation record
        """
        operation = AssignmentOperation.create(
            OperationKind.DELETE, [GroupAssignment.from_request(assignment)]
        )
        state = self._open_workflow(operation)
        deadline = Deadline(timeout)

        try:
            await self._run_phase(
                state,
                WorkflowPhase.VALIDATION,
                lambda: self._validate_assignment_requests([assignment]),
                deadline,
            )
            await self._run_phase(
                state,
                WorkflowPhase.AWS_ASSIGNMENT_DELETION,
                lambda: self._delete_assignment(assignment, state),
                deadline,
            )
            await self._run_phase(
                state,
                WorkflowPhase.VERIFICATION,
                lambda: self._verify_assignment_removed(assignment),
                deadline,
            )
        except Exception as e:
            operation.errors.extend(state.errors)
            operation.errors.append(OperationError.from_exception(e, ASSIGNMENT_REMOVAL_FAILED))
            await self._rollback_after_failure(operation, state)
            operation.fail_pending_assignments()
            self._finish(operation, state, OperationStatus.FAILED)
            self._persist_failed(operation)
            return operation

        operation.assignments[0].status = AssignmentStatus.ACTIVE
        operation.assignments[0].last_validated = datetime.now(timezone.utc)
        self._finish(operation, state, OperationStatus.COMPLETED)
        self.history_store.add_operation(operation)
        return operation

    async def _validate_assignment_requests(self, assignments: Sequence[AssignmentRequest]) -> None:
        if not assignments:
            raise ValidationError("No assignments provided")
        for index, assignment in enumerate(assignments):
            if not assignment.group_id:
                raise ValidationError(f"Assignment {index}: group id is required")
            if not is_valid_account_id(assignment.account_id):
                raise ValidationError(
                    f"Assignment {index}: invalid AWS account ID {assignment.account_id}, expected 12 digits"
                )
            if not assignment.permission_set_arn.startswith("arn:"):
                raise ValidationError(
                    f"Assignment {index}: invalid permission set ARN {assignment.permission_set_arn}"
                )

    async def _validate_identity_group(self, group_id: str) -> None:
        validation = await self._call(
            lambda: self.identity_client.validate_group_detailed(group_id), "validate identity group"
        )
        if not validation.is_valid:
            raise IdentityProviderError(
                f"Azure group {group_id} validation failed: {', '.join(validation.errors)}",
                errors=validation.errors,
                context={"group_id": group_id},
            )

    async def _validate_identity_groups(self, group_ids: Sequence[str]) -> None:
        for group_id in dict.fromkeys(group_ids):
            await self._validate_identity_group(group_id)

    async def _check_conflicts(self, assignments: Sequence[AssignmentRequest], label: str) -> None:
        result = await self.conflict_detector.detect(assignments)
        if result.has_conflicts:
            messages = [conflict.message for conflict in result.conflicts]
            raise ConflictDetectedError(
                f"{label}: {', '.join(messages)}",
                conflicts=result.conflicts,
                context={
                    "conflicts": [
                        {"type": c.conflict_type.value, "message": c.message} for c in result.conflicts
                    ]
                },
            )

    async def _execute_assignment(self, assignment: AssignmentRequest, state: WorkflowState) -> None:
        await self._assign_group(
            assignment.group_id, assignment.account_id, assignment.permission_set_arn, state
        )

    async def _assign_group(
        self, group_id: str, account_id: str, permission_set_arn: str, state: WorkflowState
    ) -> None:
        """Create an account assignment and require it to reach PROVISIONED."""
        action = DeleteAssignmentAction(
            group_id=group_id, account_id=account_id, permission_set_arn=permission_set_arn
        )
        try:
            result = await self._call(
                lambda: self.platform_client.assign_group_to_account(
                    group_id, account_id, permission_set_arn
                ),
                "assign group to account",
            )
        except PollingTimeoutError:
            # The creation request was accepted and can still complete later
            state.register_rollback(action)
            raise
        state.register_rollback(action)
        self._require_provisioned(result)

    @staticmethod
    def _require_provisioned(result: AccountAssignment) -> None:
        if result.status != PROVISIONED_ASSIGNMENT_STATUS:
            raise PlatformError(
                f"Account assignment for {result.principal_id} in {result.account_id} "
                f"is {result.status or 'UNKNOWN'}, not {PROVISIONED_ASSIGNMENT_STATUS}",
                context={
                    "group_id": result.principal_id,
                    "account_id": result.account_id,
                    "permission_set_arn": result.permission_set_arn,
                    "status": result.status,
                    "request_id": result.request_id,
                },
            )

    async def _verify_assignment(self, assignment: AssignmentRequest) -> None:
        sync_status = await self._call(
            lambda: self.platform_client.check_group_synchronization_status(assignment.group_id),
            "check group synchronization",
        )
        if not sync_status.is_synced:
            raise PlatformError(
                f"Group {assignment.group_id} is not synchronized to AWS",
                context={"group_id": assignment.group_id},
            )

    async def _delete_assignment(self, assignment: AssignmentRequest, state: WorkflowState) -> None:
        request_id = await self._call(
            lambda: self.platform_client.delete_account_assignment(
                assignment.group_id, assignment.account_id, assignment.permission_set_arn
            ),
            "delete account assignment",
        )
        await self.rollback_engine.wait_for_deletion(request_id)
        state.register_rollback(
            RestoreAssignmentAction(
                group_id=assignment.group_id,
                account_id=assignment.account_id,
                permission_set_arn=assignment.permission_set_arn,
            )
        )

    async def _verify_assignment_removed(self, assignment: AssignmentRequest) -> None:
        existing = await self._call(
            self.platform_client.list_account_assignments, "list account assignments"
        )
        if any(
            (a.principal_id, a.account_id, a.permission_set_arn) == assignment.key() for a in existing
        ):
            raise PlatformError(
                f"Assignment of group {assignment.group_id} in account {assignment.account_id} still exists"
            )

    # ------------------------------------------------------------------
    # Access grants
    # ------------------------------------------------------------------

    async def create_access_grant(
        self, request: AccessGrantRequest, timeout: Optional[float] = None
    ) -> AccessGrantResult:
        """
        Create a complete access grant for one environment.

        Args:
            request: Access grant request
            timeout: Overall deadline in seconds

        Returns:
            Access grant result with the completed operation record

        Raises:
            Exception: The error of the failing phase, after rollback has run and
                the FAILED operation has been recorded
        """
        operation = AssignmentOperation.create(
            OperationKind.CREATE,
            metadata={
                "type": "access_grant",
                "environment": request.environment,
                "ticket_id": request.ticket_id,
            },
        )
        state = self._open_workflow(operation)
        deadline = Deadline(timeout)
        ctx = _GrantContext(request=request)

        phases = [
            (WorkflowPhase.VALIDATION, lambda: self._validate_grant_request(ctx, operation)),
            (WorkflowPhase.AZURE_GROUP_CREATION, lambda: self._create_identity_group(ctx, state)),
            (WorkflowPhase.AZURE_GROUP_MEMBERS, lambda: self._add_group_members(ctx)),
            (WorkflowPhase.ENTERPRISE_APP_CONFIG, lambda: self._bind_enterprise_app(ctx, state)),
            (WorkflowPhase.PROVISIONING, lambda: self._provision_group(ctx)),
            (WorkflowPhase.AWS_SYNC_VERIFICATION, lambda: self._wait_for_sync(ctx)),
            (WorkflowPhase.AWS_PERMISSION_SET_CREATION, lambda: self._create_permission_set(ctx, state)),
            (WorkflowPhase.AWS_ACCOUNT_ASSIGNMENT, lambda: self._assign_account(ctx, operation, state)),
        ]

        try:
            for phase, step in phases:
                await self._run_phase(state, phase, step, deadline)
            validation_results = await self._run_phase(
                state,
                WorkflowPhase.END_TO_END_VALIDATION,
                lambda: self._validate_end_to_end(ctx.group_id, ctx.permission_set_arn, ctx.account_id),
                deadline,
            )
        except Exception as e:
            operation.errors.extend(state.errors)
            operation.errors.append(OperationError.from_exception(e, ACCESS_GRANT_FAILED))
            await self._rollback_after_failure(operation, state)
            operation.fail_pending_assignments()
            self._finish(operation, state, OperationStatus.FAILED)
            self._persist_failed(operation)
            if isinstance(e, AccessGrantError):
                e.operation_id = operation.operation_id
            raise

        grant_assignment = operation.assignments[0]
        if validation_results.users_can_access:
            grant_assignment.status = AssignmentStatus.ACTIVE
            grant_assignment.last_validated = datetime.now(timezone.utc)
        else:
            grant_assignment.status = AssignmentStatus.FAILED
            operation.errors.append(
                OperationError(
                    code=END_TO_END_VALIDATION_INCOMPLETE,
                    message=f"Access grant {ctx.group_name} is not fully usable yet",
                    context=validation_results.to_dict(),
                    phase=WorkflowPhase.END_TO_END_VALIDATION.value,
                )
            )

        self._finish(operation, state, OperationStatus.COMPLETED)
        self.history_store.add_operation(operation)
        return AccessGrantResult(
            operation=operation,
            group_name=ctx.group_name,
            group_id=ctx.group_id,
            permission_set_arn=ctx.permission_set_arn,
            account_id=ctx.account_id,
            validation_results=validation_results,
        )

    async def _validate_grant_request(self, ctx: _GrantContext, operation: AssignmentOperation) -> None:
        request = ctx.request
        ctx.group_name = generate_group_name(
            request.environment, request.ticket_id, self.config.group_prefix
        )
        ctx.environment = Environment(request.environment)
        operation.metadata["group_name"] = ctx.group_name

        if not self.config.enterprise_app_id:
            raise ConfigurationError("Azure Enterprise Application ID is not configured")
        ctx.account_id = self.config.account_for(ctx.environment)

        ctx.owners = list(request.owners) or list(self.config.default_owners)
        if not ctx.owners:
            raise ValidationError("At least one group owner is required")
        invalid = [p for p in [*ctx.owners, *request.members] if not is_valid_email(p)]
        if invalid:
            raise ValidationError(
                f"Invalid email addresses: {', '.join(invalid)}", context={"invalid": invalid}
            )

        ctx.permission_source = request.permission_source()
        if isinstance(ctx.permission_source, TemplatePermissions):
            if self.permission_set_manager.catalog.get(ctx.permission_source.template_name) is None:
                raise ValidationError(
                    f"Template '{ctx.permission_source.template_name}' not found",
                    context={"template": ctx.permission_source.template_name},
                )

        if await self._find_group_by_name(ctx.group_name) is not None:
            raise ValidationError(f"Group with name {ctx.group_name} already exists")

    async def _find_group_by_name(self, group_name: str):
        groups = await self._call(
            lambda: self.identity_client.list_groups(group_name), "list identity groups"
        )
        for group in groups:
            if group.display_name == group_name:
                return group
        return None

    async def _create_identity_group(self, ctx: _GrantContext, state: WorkflowState) -> None:
        request = ctx.request
        description = (
            request.description
            or f"Access grant for {ctx.environment.value} environment - Ticket: {request.ticket_id}"
        )
        attempts = 0

        async def create() -> GroupCreationResult:
            nonlocal attempts
            attempts += 1
            if attempts > 1:
                # An earlier attempt may have created the group before failing
                existing = await self._find_group_by_name(ctx.group_name)
                if existing is not None:
                    return GroupCreationResult(success=True, group_id=existing.group_id)
            return await self.identity_client.create_group(ctx.group_name, description)

        result = await self._call(create, "create identity group")
        if not result.success or not result.group_id:
            raise IdentityProviderError(
                f"Group creation failed: {', '.join(result.errors) or 'no group id returned'}",
                errors=result.errors,
            )
        ctx.group_id = result.group_id
        state.register_rollback(DeleteIdentityGroupAction(group_id=ctx.group_id))

    async def _add_group_members(self, ctx: _GrantContext) -> None:
        for owner in ctx.owners:
            result = await self._call(
                lambda: self.identity_client.add_group_owner(ctx.group_id, owner), "add group owner"
            )
            if not result.success:
                raise IdentityProviderError(
                    f"Failed to add owner {owner}: {', '.join(result.errors)}", errors=result.errors
                )
        for member in ctx.request.members:
            result = await self._call(
                lambda: self.identity_client.add_group_member(ctx.group_id, member), "add group member"
            )
            if not result.success:
                raise IdentityProviderError(
                    f"Failed to add member {member}: {', '.join(result.errors)}", errors=result.errors
                )

    async def _bind_enterprise_app(self, ctx: _GrantContext, state: WorkflowState) -> None:
        app_id = self.config.enterprise_app_id
        result = await self._call(
            lambda: self.identity_client.bind_enterprise_app(ctx.group_id, app_id),
            "bind enterprise application",
        )
        if not result.success:
            raise IdentityProviderError(
                f"Enterprise app assignment failed: {', '.join(result.errors)}", errors=result.errors
            )
        ctx.app_assignment_id = result.assignment_id
        state.register_rollback(
            RemoveEnterpriseAppAssignmentAction(
                group_id=ctx.group_id, app_id=app_id, assignment_id=result.assignment_id
            )
        )

    async def _provision_group(self, ctx: _GrantContext) -> None:
        app_id = self.config.enterprise_app_id
        try:
            trigger = await self._call(
                lambda: self.identity_client.trigger_provisioning(ctx.group_id, app_id),
                "trigger provisioning",
            )
            if not trigger.success:
                self.logger.warning(
                    f"On-demand provisioning for {ctx.group_name} was not accepted: "
                    f"{', '.join(trigger.errors)}. Waiting for the regular sync cycle."
                )
        except Exception as e:
            self.logger.warning(
                f"On-demand provisioning for {ctx.group_name} failed: {e}. Waiting for the regular sync cycle."
            )

        started = time.monotonic()
        while True:
            status = await self._call(
                lambda: self.identity_client.get_provisioning_status(ctx.group_id, app_id),
                "get provisioning status",
            )
            if status.status == ProvisioningState.PROVISIONED:
                return
            if status.status == ProvisioningState.FAILED:
                raise IdentityProviderError(
                    f"Provisioning failed: {', '.join(status.errors) or 'unknown error'}",
                    errors=status.errors,
                )
            elapsed = time.monotonic() - started
            if elapsed + self.config.provisioning_poll_interval > self.config.provisioning_timeout:
                raise PollingTimeoutError(
                    f"Provisioning of group {ctx.group_name} did not complete within "
                    f"{self.config.provisioning_timeout:g}s (last status: {status.status.value})",
                    phase=WorkflowPhase.PROVISIONING.value,
                )
            await asyncio.sleep(self.config.provisioning_poll_interval)

    async def _wait_for_sync(self, ctx: _GrantContext) -> None:
        attempts = self.config.sync_check_attempts
        for attempt in range(1, attempts + 1):
            sync_status = await self._call(
                lambda: self.platform_client.check_group_synchronization_status(ctx.group_id),
                "check group synchronization",
            )
            if sync_status.is_synced:
                self.logger.info(
                    f"Group {ctx.group_name} synchronized as {sync_status.remote_group_id}"
                )
                return
            if attempt < attempts:
                await asyncio.sleep(self.config.sync_check_interval)

        raise PollingTimeoutError(
            f"Group {ctx.group_name} failed to sync to AWS after {attempts} attempts",
            phase=WorkflowPhase.AWS_SYNC_VERIFICATION.value,
        )

    async def _create_permission_set(self, ctx: _GrantContext, state: WorkflowState) -> None:
        permission_set = await self.permission_set_manager.create(
            ctx.permission_source,
            name=ctx.group_name,
            description=f"Permission set for {ctx.group_name} - {ctx.environment.value} environment",
            extra_tags={
                "AccessGrant": ctx.group_name,
                "Environment": ctx.environment.value,
                "TicketId": ctx.request.ticket_id,
            },
        )
        ctx.permission_set_arn = permission_set.arn
        state.register_rollback(DeletePermissionSetAction(permission_set_arn=permission_set.arn))

    async def _assign_account(
        self, ctx: _GrantContext, operation: AssignmentOperation, state: WorkflowState
    ) -> None:
        await self._assign_group(ctx.group_id, ctx.account_id, ctx.permission_set_arn, state)
        operation.assignments.append(
            GroupAssignment(
                group_id=ctx.group_id,
                group_name=ctx.group_name,
                account_id=ctx.account_id,
                permission_set_arn=ctx.permission_set_arn,
            )
        )

    async def _validate_end_to_end(
        self, group_id: str, permission_set_arn: str, account_id: str
    ) -> ValidationResults:
        sync_status = await self._call(
            lambda: self.platform_client.check_group_synchronization_status(group_id),
            "check group synchronization",
        )
        permission_set_exists = await self._permission_set_exists(permission_set_arn)
        assignments = await self._call(
            self.platform_client.list_account_assignments, "list account assignments"
        )
        assignment_active = any(
            a.principal_id == group_id
            and a.permission_set_arn == permission_set_arn
            and a.account_id == account_id
            and a.status == PROVISIONED_ASSIGNMENT_STATUS
            for a in assignments
        )
        return ValidationResults(
            group_synced=sync_status.is_synced,
            permission_set_created=permission_set_exists,
            assignment_active=assignment_active,
        )

    async def _permission_set_exists(self, permission_set_arn: str) -> bool:
        try:
            await self._call(
                lambda: self.platform_client.describe_permission_set(permission_set_arn),
                "describe permission set",
            )
        except Exception as e:
            if is_resource_absent(e):
                return False
            raise
        return True

    # ------------------------------------------------------------------
    # Rollback and read-only projections
    # ------------------------------------------------------------------

    async def rollback_operation(self, operation_id: str) -> RollbackResult:
        """
        Undo a completed operation.

        Args:
            operation_id: ID of the operation to roll back

        Returns:
            Per-action rollback outcomes

        Raises:
            OperationNotFoundError: If the operation is not in the history store
            OperationStateError: If the operation is not COMPLETED
            WorkflowStateNotFoundError: If the workflow state is no longer available
        """
        operation = self.history_store.get_operation(operation_id)
        if operation is None:
            raise OperationNotFoundError(operation_id)
        if operation.status == OperationStatus.ROLLED_BACK:
            raise OperationAlreadyRolledBackError(operation_id, operation.status.value)
        if operation.status != OperationStatus.COMPLETED:
            raise OperationStateError(operation_id, operation.status.value)

        state = self.workflow_states.get(operation_id)
        if state is None:
            raise WorkflowStateNotFoundError(operation_id)

        before = len(state.errors)
        result = await self.rollback_engine.rollback(state)
        operation.errors.extend(state.errors[before:])
        operation.status = OperationStatus.ROLLED_BACK
        operation.metadata["rolled_back_at"] = datetime.now(timezone.utc).isoformat()
        self.history_store.update_operation(operation)
        self.logger.info(f"Operation {operation_id} rolled back")
        return result

    def list_operations(self, operation_filter: Optional[OperationFilter] = None) -> List[AssignmentOperation]:
        return self.history_store.get_operations(operation_filter)

    def get_operation_status(self, operation_id: str) -> Optional[AssignmentOperation]:
        """Return the operation record, including operations still in progress."""
        active = self._active_operations.get(operation_id)
        if active is not None:
            return active
        return self.history_store.get_operation(operation_id)

    def get_workflow_state(self, operation_id: str) -> Optional[WorkflowState]:
        return self.workflow_states.get(operation_id)

    def list_access_grants(
        self,
        environment: Optional[str] = None,
        status: Optional[OperationStatus] = None,
    ) -> List[AssignmentOperation]:
        """
        List CREATE operations, optionally limited to one environment's account.

        Raises:
            ValidationError: If the environment is unknown
        """
        operation_filter = OperationFilter(kind=OperationKind.CREATE, status=status)
        if environment is not None:
            operation_filter.account_id = self.config.account_for(validate_environment(environment))
        return [
            op for op in self.history_store.get_operations(operation_filter) if op.assignments
        ]

    async def validate_access_grant(self, group_name: str) -> AccessGrantReport:
        """
        Cross-check the live state of an existing access grant.

        Args:
            group_name: Group name such as CE-AWS-Dev-AG-1234

        Returns:
            Combined report over the identity group, synchronization, permission
            set and account assignment

        Raises:
            ValidationError: If the name does not follow the access grant pattern
            AccessGrantValidationError: If the group does not exist
        """
        parsed = parse_group_name(group_name, self.config.group_prefix)
        group = await self._find_group_by_name(group_name)
        if group is None:
            raise AccessGrantValidationError(
                f"Group {group_name} not found", context={"group_name": group_name}
            )

        group_validation = await self._call(
            lambda: self.identity_client.validate_group_detailed(group.group_id),
            "validate identity group",
        )
        sync_status = await self._call(
            lambda: self.platform_client.check_group_synchronization_status(group.group_id),
            "check group synchronization",
        )
        account_id = self.config.account_for(parsed.environment)

        permission_set = await self.permission_set_manager.find_by_name(group_name)
        assignments = await self._call(
            self.platform_client.list_account_assignments, "list account assignments"
        )
        match = next(
            (
                a
                for a in assignments
                if a.principal_id == group.group_id and a.account_id == account_id
            ),
            None,
        )

        return AccessGrantReport(
            group_name=group_name,
            environment=parsed.environment.value,
            ticket_id=parsed.ticket_id,
            identity_group=GroupReport(
                exists=group_validation.exists,
                is_valid=group_validation.is_valid,
                member_count=group_validation.member_count,
                errors=list(group_validation.errors),
            ),
            synchronization=SynchronizationReport(
                is_synced=sync_status.is_synced,
                remote_group_id=sync_status.remote_group_id,
                last_sync_time=sync_status.last_sync_time,
            ),
            permission_set=PermissionSetReport(
                exists=permission_set is not None,
                arn=permission_set.arn if permission_set else None,
                name=permission_set.name if permission_set else None,
            ),
            assignment=AssignmentReport(
                exists=match is not None,
                status=match.status if match else None,
                account_id=account_id,
            ),
        )

    def cleanup_old_operations(self, older_than_hours: Optional[float] = None) -> int:
        """Drop terminal workflow states older than the given age."""
        hours = (
            older_than_hours
            if older_than_hours is not None
            else self.config.workflow_state_retention_hours
        )
        removed = self.workflow_states.cleanup(hours)
        if removed:
            self.logger.info(f"Cleaned up {removed} workflow states older than {hours:g} hours")
        return removed

    def cleanup_history(self) -> int:
        """Apply the history store retention rules."""
        return self.history_store.cleanup()
