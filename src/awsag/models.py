"""Data models for access grant orchestration."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple, Union

if TYPE_CHECKING:
    from .rollback.models import RollbackAction


class Environment(str, Enum):
    """Isolated target environments, each mapped to one AWS account."""

    DEV = "Dev"
    QA = "QA"
    STAGING = "Staging"
    PROD = "Prod"

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


class AssignmentStatus(str, Enum):
    """Status of a single group assignment."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"


class OperationStatus(str, Enum):
    """Overall status of an assignment operation."""

    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    ROLLED_BACK = "ROLLED_BACK"


class OperationKind(str, Enum):
    """Kind of change an operation makes."""

    CREATE = "CREATE"
    DELETE = "DELETE"
    UPDATE = "UPDATE"


class WorkflowPhase(str, Enum):
    """Phases of the workflow state machines.

    Access grants run VALIDATION through END_TO_END_VALIDATION. Plain
    assignments run VALIDATION, AZURE_VALIDATION, CONFLICT_CHECK,
    AWS_ASSIGNMENT and VERIFICATION.
    """

    VALIDATION = "VALIDATION"
    AZURE_VALIDATION = "AZURE_VALIDATION"
    CONFLICT_CHECK = "CONFLICT_CHECK"
    AWS_ASSIGNMENT = "AWS_ASSIGNMENT"
    AWS_ASSIGNMENT_DELETION = "AWS_ASSIGNMENT_DELETION"
    VERIFICATION = "VERIFICATION"
    AZURE_GROUP_CREATION = "AZURE_GROUP_CREATION"
    AZURE_GROUP_MEMBERS = "AZURE_GROUP_MEMBERS"
    ENTERPRISE_APP_CONFIG = "ENTERPRISE_APP_CONFIG"
    PROVISIONING = "PROVISIONING"
    AWS_SYNC_VERIFICATION = "AWS_SYNC_VERIFICATION"
    AWS_PERMISSION_SET_CREATION = "AWS_PERMISSION_SET_CREATION"
    AWS_ACCOUNT_ASSIGNMENT = "AWS_ACCOUNT_ASSIGNMENT"
    END_TO_END_VALIDATION = "END_TO_END_VALIDATION"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


ACCESS_GRANT_PHASES = [
    WorkflowPhase.VALIDATION,
    WorkflowPhase.AZURE_GROUP_CREATION,
    WorkflowPhase.AZURE_GROUP_MEMBERS,
    WorkflowPhase.ENTERPRISE_APP_CONFIG,
    WorkflowPhase.PROVISIONING,
    WorkflowPhase.AWS_SYNC_VERIFICATION,
    WorkflowPhase.AWS_PERMISSION_SET_CREATION,
    WorkflowPhase.AWS_ACCOUNT_ASSIGNMENT,
    WorkflowPhase.END_TO_END_VALIDATION,
]


class ConflictType(str, Enum):
    """Kinds of assignment conflicts."""

    DUPLICATE_ASSIGNMENT = "DUPLICATE_ASSIGNMENT"
    PERMISSION_OVERLAP = "PERMISSION_OVERLAP"
    GROUP_NOT_SYNCED = "GROUP_NOT_SYNCED"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


@dataclass
class OperationError:
    """An error attached to an operation record or workflow state."""

    code: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)
    phase: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_exception(
        cls,
        error: Exception,
        code: str,
        phase: Optional[WorkflowPhase] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> "OperationError":
        """Build an error record from an exception."""
        details = dict(getattr(error, "context", None) or {})
        details.update(context or {})
        return cls(
            code=code,
            message=str(error) or error.__class__.__name__,
            context=details,
            phase=phase.value if phase else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "phase": self.phase,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OperationError":
        return cls(
            code=data["code"],
            message=data["message"],
            context=data.get("context", {}),
            phase=data.get("phase"),
            timestamp=_parse_datetime(data.get("timestamp")) or _utcnow(),
        )


@dataclass(frozen=True)
class AssignmentRequest:
    """A proposed identity group to permission set to account binding."""

    group_id: str
    account_id: str
    permission_set_arn: str
    group_name: Optional[str] = None

    def key(self) -> Tuple[str, str, str]:
        return (self.group_id, self.account_id, self.permission_set_arn)


@dataclass
class GroupAssignment:
    """One identity group to permission set to account triple tracked by an operation."""

    group_id: str
    group_name: str
    account_id: str
    permission_set_arn: str
    status: AssignmentStatus = AssignmentStatus.PENDING
    created_at: datetime = field(default_factory=_utcnow)
    last_validated: Optional[datetime] = None

    @classmethod
    def from_request(cls, request: AssignmentRequest) -> "GroupAssignment":
        return cls(
            group_id=request.group_id,
            group_name=request.group_name or request.group_id,
            account_id=request.account_id,
            permission_set_arn=request.permission_set_arn,
        )

    def to_request(self) -> AssignmentRequest:
        return AssignmentRequest(
            group_id=self.group_id,
            account_id=self.account_id,
            permission_set_arn=self.permission_set_arn,
            group_name=self.group_name,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group_id": self.group_id,
            "group_name": self.group_name,
            "account_id": self.account_id,
            "permission_set_arn": self.permission_set_arn,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "last_validated": self.last_validated.isoformat() if self.last_validated else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GroupAssignment":
        return cls(
            group_id=data["group_id"],
            group_name=data.get("group_name", data["group_id"]),
            account_id=data["account_id"],
            permission_set_arn=data["permission_set_arn"],
            status=AssignmentStatus(data.get("status", AssignmentStatus.PENDING.value)),
            created_at=_parse_datetime(data.get("created_at")) or _utcnow(),
            last_validated=_parse_datetime(data.get("last_validated")),
        )


@dataclass
class AssignmentOperation:
    """The unit of work and audit record for one orchestrator call."""

    operation_id: str
    kind: OperationKind
    assignments: List[GroupAssignment] = field(default_factory=list)
    status: OperationStatus = OperationStatus.IN_PROGRESS
    errors: List[OperationError] = field(default_factory=list)
    start_time: datetime = field(default_factory=_utcnow)
    end_time: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        kind: OperationKind,
        assignments: Optional[List[GroupAssignment]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "AssignmentOperation":
        """Create a new operation with a generated ID."""
        return cls(
            operation_id=str(uuid.uuid4()),
            kind=kind,
            assignments=list(assignments or []),
            metadata=dict(metadata or {}),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status != OperationStatus.IN_PROGRESS

    @property
    def duration_ms(self) -> Optional[int]:
        if self.end_time is None:
            return None
        return int((self.end_time - self.start_time).total_seconds() * 1000)

    def finish(self, status: OperationStatus) -> None:
        """Move the operation to a terminal status."""
        self.status = status
        self.end_time = _utcnow()

    def fail_pending_assignments(self) -> None:
        """Mark every assignment that was not verified as failed."""
        for assignment in self.assignments:
            if assignment.status != AssignmentStatus.ACTIVE:
                assignment.status = AssignmentStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "kind": self.kind.value,
            "assignments": [a.to_dict() for a in self.assignments],
            "status": self.status.value,
            "errors": [e.to_dict() for e in self.errors],
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssignmentOperation":
        return cls(
            operation_id=data["operation_id"],
            kind=OperationKind(data["kind"]),
            assignments=[GroupAssignment.from_dict(a) for a in data.get("assignments", [])],
            status=OperationStatus(data["status"]),
            errors=[OperationError.from_dict(e) for e in data.get("errors", [])],
            start_time=_parse_datetime(data.get("start_time")) or _utcnow(),
            end_time=_parse_datetime(data.get("end_time")),
            metadata=data.get("metadata", {}),
        )


@dataclass(frozen=True)
class CustomPermissions:
    """Explicit permission fields for a permission set."""

    managed_policies: Tuple[str, ...] = ()
    inline_policy: Optional[str] = None
    session_duration: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "managed_policies", tuple(self.managed_policies))


@dataclass(frozen=True)
class TemplatePermissions:
    """Permission set built from a catalog template with optional overrides."""

    template_name: str
    overrides: Optional[CustomPermissions] = None


PermissionSource = Union[TemplatePermissions, CustomPermissions]


@dataclass(frozen=True)
class AccessGrantRequest:
    """Input for creating an access grant. Immutable once submitted."""

    environment: str
    ticket_id: str
    owners: Tuple[str, ...] = ()
    members: Tuple[str, ...] = ()
    permission_template: Optional[str] = None
    custom_permissions: Optional[CustomPermissions] = None
    description: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "owners", tuple(self.owners))
        object.__setattr__(self, "members", tuple(self.members))
        if isinstance(self.environment, Environment):
            object.__setattr__(self, "environment", self.environment.value)

    def permission_source(self) -> PermissionSource:
        """Resolve which permission source the request describes."""
        if self.permission_template:
            return TemplatePermissions(
                template_name=self.permission_template, overrides=self.custom_permissions
            )
        return self.custom_permissions or CustomPermissions()


@dataclass
class ValidationResults:
    """End-to-end validation flags for an access grant."""

    group_synced: bool = False
    permission_set_created: bool = False
    assignment_active: bool = False

    @property
    def users_can_access(self) -> bool:
        return self.group_synced and self.permission_set_created and self.assignment_active

    def to_dict(self) -> Dict[str, bool]:
        return {
            "group_synced": self.group_synced,
            "permission_set_created": self.permission_set_created,
            "assignment_active": self.assignment_active,
            "users_can_access": self.users_can_access,
        }


@dataclass
class AccessGrantResult:
    """Result of a successful access grant workflow."""

    operation: AssignmentOperation
    group_name: str
    group_id: str
    permission_set_arn: str
    account_id: str
    validation_results: ValidationResults


@dataclass
class GroupReport:
    exists: bool = False
    is_valid: bool = False
    member_count: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class SynchronizationReport:
    is_synced: bool = False
    remote_group_id: Optional[str] = None
    last_sync_time: Optional[datetime] = None


@dataclass
class PermissionSetReport:
    exists: bool = False
    arn: Optional[str] = None
    name: Optional[str] = None


@dataclass
class AssignmentReport:
    exists: bool = False
    status: Optional[str] = None
    account_id: Optional[str] = None


@dataclass
class AccessGrantReport:
    """Combined live state of an existing access grant."""

    group_name: str
    environment: str
    ticket_id: str
    identity_group: GroupReport
    synchronization: SynchronizationReport
    permission_set: PermissionSetReport
    assignment: AssignmentReport

    @property
    def validation_results(self) -> ValidationResults:
        return ValidationResults(
            group_synced=self.synchronization.is_synced,
            permission_set_created=self.permission_set.exists,
            assignment_active=self.assignment.exists and self.assignment.status == "PROVISIONED",
        )


@dataclass(frozen=True)
class Conflict:
    """A conflict between a proposed assignment and existing state."""

    conflict_type: ConflictType
    group_id: str
    account_id: str
    permission_set_arn: str
    message: str


@dataclass
class ConflictDetectionResult:
    conflicts: List[Conflict] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


@dataclass
class WorkflowState:
    """In-memory state of one workflow instance."""

    operation_id: str
    current_phase: WorkflowPhase = WorkflowPhase.VALIDATION
    completed_phases: List[str] = field(default_factory=list)
    errors: List[OperationError] = field(default_factory=list)
    rollback_actions: List["RollbackAction"] = field(default_factory=list)
    updated_at: datetime = field(default_factory=_utcnow)

    def enter(self, phase: WorkflowPhase) -> None:
        self.current_phase = phase
        self.updated_at = _utcnow()

    def complete_phase(self, phase: WorkflowPhase) -> None:
        self.completed_phases.append(phase.value)
        self.updated_at = _utcnow()

    def record_error(self, error: OperationError) -> None:
        self.errors.append(error)
        self.updated_at = _utcnow()

    def register_rollback(self, action: "RollbackAction") -> None:
        """Append a compensating action in execution order."""
        self.rollback_actions.append(action)
        self.updated_at = _utcnow()

    @property
    def is_terminal(self) -> bool:
        return self.current_phase in (WorkflowPhase.COMPLETED, WorkflowPhase.FAILED)
