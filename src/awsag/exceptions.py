"""Exception hierarchy for access grant orchestration.

Every error raised by the orchestrator carries a machine-readable code, a human
message, optional structured context and the time it was raised. The helpers at
the bottom of the module classify remote failures (boto3 ClientError or plain
exceptions coming from the identity provider) into "already absent" and
"still in use" outcomes used by the rollback engine.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

NOT_FOUND_ERROR_CODES = {
    "ResourceNotFoundException",
    "NotFoundException",
    "Request_ResourceNotFound",
    "ResourceNotFound",
}

IN_USE_ERROR_CODES = {
    "ConflictException",
    "ResourceInUseException",
}

NOT_FOUND_PATTERNS = ("not found", "does not exist", "notfound")

IN_USE_PATTERNS = ("in use", "has assignments", "still referenced", "is provisioned")


class AccessGrantError(Exception):
    """Base exception for all access grant errors."""

    default_code = "ACCESS_GRANT_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
        operation_id: Optional[str] = None,
    ):
        """
        Initialize access grant error.

        Args:
            message: Human readable error message
            code: Machine readable error code
            context: Additional structured details about the failure
            retryable: Whether retrying the failed action may succeed
            operation_id: Operation the error belongs to, if known
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context = context or {}
        self.retryable = retryable
        self.operation_id = operation_id
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a dictionary."""
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "retryable": self.retryable,
            "operation_id": self.operation_id,
            "timestamp": self.timestamp.isoformat(),
        }


class ValidationError(AccessGrantError):
    """Raised when input or a pre-condition is rejected."""

    default_code = "VALIDATION_FAILED"


class ConfigurationError(AccessGrantError):
    """Raised when the tool configuration is missing or invalid."""

    default_code = "CONFIGURATION_ERROR"


class IdentityProviderError(AccessGrantError):
    """Raised when the identity provider reports an unsuccessful call."""

    default_code = "IDENTITY_PROVIDER_ERROR"

    def __init__(self, message: str, errors: Optional[List[str]] = None, **kwargs):
        """
        Initialize identity provider error.

        Args:
            message: Human readable error message
            errors: Error strings reported by the identity client
        """
        self.errors = list(errors or [])
        super().__init__(message, **kwargs)


class PlatformError(AccessGrantError):
    """Raised when the cloud platform reports a failure."""

    default_code = "PLATFORM_ERROR"


class ConflictDetectedError(AccessGrantError):
    """Raised when proposed assignments conflict with existing state."""

    default_code = "CONFLICTS_DETECTED"

    def __init__(self, message: str, conflicts: Optional[list] = None, **kwargs):
        """
        Initialize conflict error.

        Args:
            message: Human readable error message
            conflicts: Conflict records that were detected
        """
        self.conflicts = list(conflicts or [])
        super().__init__(message, **kwargs)


class ConflictDetectionError(AccessGrantError):
    """Raised when conflict detection itself could not complete."""

    default_code = "CONFLICT_DETECTION_FAILED"


class PollingTimeoutError(AccessGrantError):
    """Raised when a bounded polling loop or the caller deadline runs out."""

    default_code = "OPERATION_TIMEOUT"

    def __init__(self, message: str, phase: Optional[str] = None, **kwargs):
        """
        Initialize polling timeout error.

        Args:
            message: Human readable error message
            phase: Workflow phase that was running when time ran out
        """
        self.phase = phase
        if phase and "code" not in kwargs:
            kwargs["code"] = f"{phase}_TIMEOUT"
        super().__init__(message, **kwargs)


class ResourceNotFoundError(AccessGrantError):
    """Raised when a remote resource does not exist."""

    default_code = "RESOURCE_NOT_FOUND"


class ResourceInUseError(AccessGrantError):
    """Raised when a remote resource cannot be removed because it is still referenced."""

    default_code = "RESOURCE_IN_USE"


class OperationNotFoundError(AccessGrantError):
    """Raised when an operation is not present in the history store."""

    default_code = "OPERATION_NOT_FOUND"

    def __init__(self, operation_id: str):
        """
        Initialize operation not found error.

        Args:
            operation_id: ID of the operation that was not found
        """
        super().__init__(f"Operation {operation_id} not found", operation_id=operation_id)


class OperationStateError(AccessGrantError):
    """Raised when an operation is in a status that does not allow the request."""

    default_code = "INVALID_OPERATION_STATE"

    def __init__(self, operation_id: str, status: str):
        """
        Initialize operation state error.

        Args:
            operation_id: ID of the operation
            status: Current status of the operation
        """
        self.status = status
        super().__init__(
            f"Cannot rollback operation {operation_id} - status is {status}",
            operation_id=operation_id,
            context={"status": status},
        )


class OperationAlreadyRolledBackError(OperationStateError):
    """Raised when rollback is requested for an operation that was already rolled back."""

    default_code = "OPERATION_ALREADY_ROLLED_BACK"


class WorkflowStateNotFoundError(AccessGrantError):
    """Raised when the workflow state needed for rollback is gone."""

    default_code = "WORKFLOW_STATE_NOT_FOUND"

    def __init__(self, operation_id: str):
        """
        Initialize workflow state not found error.

        Args:
            operation_id: ID of the operation
        """
        super().__init__(
            f"Workflow state for operation {operation_id} not found", operation_id=operation_id
        )


class AccessGrantValidationError(AccessGrantError):
    """Raised when an existing access grant cannot be validated."""

    default_code = "ACCESS_GRANT_VALIDATION_FAILED"


def get_error_code(error: Exception) -> Optional[str]:
    """Extract a remote error code from an exception, if it carries one."""
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code")
    if isinstance(error, AccessGrantError):
        return error.code
    return getattr(error, "code", None)


def _message_matches(error: Exception, patterns) -> bool:
    message = str(error).lower()
    return any(pattern in message for pattern in patterns)


def is_resource_absent(error: Exception) -> bool:
    """Return True if the error means the target resource no longer exists."""
    if isinstance(error, ResourceNotFoundError):
        return True
    if get_error_code(error) in NOT_FOUND_ERROR_CODES:
        return True
    return _message_matches(error, NOT_FOUND_PATTERNS)


def is_resource_in_use(error: Exception) -> bool:
    """Return True if the error means the target resource is still referenced."""
    if isinstance(error, ResourceInUseError):
        return True
    if get_error_code(error) in IN_USE_ERROR_CODES:
        return True
    return _message_matches(error, IN_USE_PATTERNS)
