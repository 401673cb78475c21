"""Operation history storage."""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models import AssignmentOperation, OperationKind, OperationStatus

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 1000
DEFAULT_RETENTION_DAYS = 30


@dataclass
class OperationFilter:
    """Criteria for querying stored operations. Unset fields match everything."""

    status: Optional[OperationStatus] = None
    kind: Optional[OperationKind] = None
    account_id: Optional[str] = None
    group_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: Optional[int] = None

    def matches(self, operation: AssignmentOperation) -> bool:
        if self.status and operation.status != self.status:
            return False
        if self.kind and operation.kind != self.kind:
            return False
        if self.account_id and not any(
            a.account_id == self.account_id for a in operation.assignments
        ):
            return False
        if self.group_id and not any(a.group_id == self.group_id for a in operation.assignments):
            return False
        if self.start_date and operation.start_time < self.start_date:
            return False
        if self.end_date and operation.start_time > self.end_date:
            return False
        return True


class OperationHistoryStore(ABC):
    """Persistence for assignment operation records."""

    @abstractmethod
    def add_operation(self, operation: AssignmentOperation) -> None:
        """Store an operation, replacing any record with the same ID."""

    @abstractmethod
    def get_operation(self, operation_id: str) -> Optional[AssignmentOperation]:
        pass

    @abstractmethod
    def get_all_operations(self) -> List[AssignmentOperation]:
        """Return all operations, newest first."""

    @abstractmethod
    def delete_operation(self, operation_id: str) -> bool:
        pass

    @abstractmethod
    def cleanup(self) -> int:
        """Apply retention rules and return the number of removed operations."""

    def update_operation(self, operation: AssignmentOperation) -> None:
        self.add_operation(operation)

    def get_operations(self, operation_filter: Optional[OperationFilter] = None) -> List[AssignmentOperation]:
        """Return operations matching the filter, newest first."""
        operations = self.get_all_operations()
        if operation_filter is None:
            return operations
        matched = [op for op in operations if operation_filter.matches(op)]
        if operation_filter.limit is not None:
            matched = matched[: operation_filter.limit]
        return matched

    def get_statistics(self) -> Dict[str, Any]:
        """Summarize stored operations by status and kind."""
        operations = self.get_all_operations()
        by_status = {status.value: 0 for status in OperationStatus}
        by_kind = {kind.value: 0 for kind in OperationKind}
        for operation in operations:
            by_status[operation.status.value] += 1
            by_kind[operation.kind.value] += 1

        return {
            "total_operations": len(operations),
            "by_status": by_status,
            "by_kind": by_kind,
            "oldest_operation": operations[-1].start_time.isoformat() if operations else None,
            "newest_operation": operations[0].start_time.isoformat() if operations else None,
        }


class InMemoryOperationHistoryStore(OperationHistoryStore):
    """Process-local history store."""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        retention_days: int = DEFAULT_RETENTION_DAYS,
    ):
        self.max_entries = max_entries
        self.retention_days = retention_days
        self._operations: Dict[str, AssignmentOperation] = {}

    def add_operation(self, operation: AssignmentOperation) -> None:
        self._operations[operation.operation_id] = operation

    def get_operation(self, operation_id: str) -> Optional[AssignmentOperation]:
        return self._operations.get(operation_id)

    def get_all_operations(self) -> List[AssignmentOperation]:
        return sorted(self._operations.values(), key=lambda op: op.start_time, reverse=True)

    def delete_operation(self, operation_id: str) -> bool:
        return self._operations.pop(operation_id, None) is not None

    def cleanup(self) -> int:
        keep = _apply_retention(self.get_all_operations(), self.retention_days, self.max_entries)
        removed = len(self._operations) - len(keep)
        self._operations = {op.operation_id: op for op in keep}
        return removed


class JsonOperationHistoryStore(OperationHistoryStore):
    """JSON-file based history store."""

    def __init__(
        self,
        storage_directory: Optional[str] = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        retention_days: int = DEFAULT_RETENTION_DAYS,
    ):
        """Initialize the history store.

        Args:
            storage_directory: Directory to store the history file.
                             Defaults to ~/.awsag/operations/
            max_entries: Maximum number of operations kept by cleanup
            retention_days: Age in days after which cleanup removes operations
        """
        if storage_directory:
            self.storage_dir = Path(storage_directory).expanduser()
        else:
            self.storage_dir = Path.home() / ".awsag" / "operations"

        self.history_file = self.storage_dir / "operation-history.json"
        self.max_entries = max_entries
        self.retention_days = retention_days

        self.storage_dir.mkdir(parents=True, exist_ok=True)
        if not self.history_file.exists():
            self._write_history_file({"operations": []})

    def _read_history_file(self) -> Dict:
        try:
            with open(self.history_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {"operations": []}
        except json.JSONDecodeError as e:
            logger.warning(f"History file {self.history_file} is corrupt, starting empty: {e}")
            return {"operations": []}
        if not isinstance(data.get("operations"), list):
            return {"operations": []}
        return data

    def _write_history_file(self, data: Dict) -> None:
        tmp_file = self.history_file.with_suffix(".tmp")
        with open(tmp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
        tmp_file.replace(self.history_file)

    def _load(self) -> List[AssignmentOperation]:
        operations = []
        for op_data in self._read_history_file()["operations"]:
            try:
                operations.append(AssignmentOperation.from_dict(op_data))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed operation record: {e}")
        return operations

    def _save(self, operations: List[AssignmentOperation]) -> None:
        self._write_history_file({"operations": [op.to_dict() for op in operations]})

    def add_operation(self, operation: AssignmentOperation) -> None:
        operations = [op for op in self._load() if op.operation_id != operation.operation_id]
        operations.append(operation)
        self._save(operations)

    def get_operation(self, operation_id: str) -> Optional[AssignmentOperation]:
        for operation in self._load():
            if operation.operation_id == operation_id:
                return operation
        return None

    def get_all_operations(self) -> List[AssignmentOperation]:
        return sorted(self._load(), key=lambda op: op.start_time, reverse=True)

    def delete_operation(self, operation_id: str) -> bool:
        operations = self._load()
        remaining = [op for op in operations if op.operation_id != operation_id]
        if len(remaining) == len(operations):
            return False
        self._save(remaining)
        return True

    def cleanup(self) -> int:
        operations = self.get_all_operations()
        keep = _apply_retention(operations, self.retention_days, self.max_entries)
        removed = len(operations) - len(keep)
        if removed:
            self._save(keep)
            logger.info(f"Removed {removed} operations from history")
        return removed

    def export_to_file(self, path: str) -> int:
        """Write all operations to a JSON file and return how many were written."""
        operations = self.get_all_operations()
        with open(Path(path).expanduser(), "w", encoding="utf-8") as f:
            json.dump(
                {
                    "exported_at": datetime.now(timezone.utc).isoformat(),
                    "operations": [op.to_dict() for op in operations],
                },
                f,
                indent=2,
                default=str,
            )
        return len(operations)

    def import_from_file(self, path: str) -> int:
        """Merge operations from an exported file and return how many were imported."""
        with open(Path(path).expanduser(), "r", encoding="utf-8") as f:
            data = json.load(f)

        existing = {op.operation_id: op for op in self._load()}
        imported = 0
        for op_data in data.get("operations", []):
            operation = AssignmentOperation.from_dict(op_data)
            if operation.operation_id not in existing:
                imported += 1
            existing[operation.operation_id] = operation
        self._save(list(existing.values()))
        return imported


def _apply_retention(
    operations: List[AssignmentOperation], retention_days: int, max_entries: int
) -> List[AssignmentOperation]:
    """Drop operations older than the retention period, then keep the newest max_entries."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
    recent = [op for op in operations if op.start_time >= cutoff]
    recent.sort(key=lambda op: op.start_time, reverse=True)
    return recent[:max_entries]
