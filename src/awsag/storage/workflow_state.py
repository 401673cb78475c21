"""Storage for in-flight workflow state."""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from ..models import WorkflowState


class WorkflowStateStore(ABC):
    """Workflow states keyed by operation id."""

    @abstractmethod
    def save(self, state: WorkflowState) -> None:
        pass

    @abstractmethod
    def get(self, operation_id: str) -> Optional[WorkflowState]:
        pass

    @abstractmethod
    def remove(self, operation_id: str) -> bool:
        pass

    @abstractmethod
    def list_states(self) -> List[WorkflowState]:
        pass

    def cleanup(self, older_than_hours: float) -> int:
        """Remove terminal states not touched for the given number of hours."""
        cutoff = datetime.now(timezone.utc) - timedelta(hours=older_than_hours)
        removed = 0
        for state in self.list_states():
            if state.is_terminal and state.updated_at < cutoff:
                if self.remove(state.operation_id):
                    removed += 1
        return removed


class InMemoryWorkflowStateStore(WorkflowStateStore):
    """Process-local workflow state store."""

    def __init__(self):
        self._states: Dict[str, WorkflowState] = {}

    def save(self, state: WorkflowState) -> None:
        self._states[state.operation_id] = state

    def get(self, operation_id: str) -> Optional[WorkflowState]:
        return self._states.get(operation_id)

    def remove(self, operation_id: str) -> bool:
        return self._states.pop(operation_id, None) is not None

    def list_states(self) -> List[WorkflowState]:
        return list(self._states.values())
