"""Operation history and workflow state storage."""

from .history import (
    InMemoryOperationHistoryStore,
    JsonOperationHistoryStore,
    OperationFilter,
    OperationHistoryStore,
)
from .workflow_state import InMemoryWorkflowStateStore, WorkflowStateStore

__all__ = [
    "OperationFilter",
    "OperationHistoryStore",
    "InMemoryOperationHistoryStore",
    "JsonOperationHistoryStore",
    "WorkflowStateStore",
    "InMemoryWorkflowStateStore",
]
