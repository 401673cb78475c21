"""Tests for operation history storage."""

import json
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from src.awsag.models import (
    AssignmentOperation,
    AssignmentStatus,
    GroupAssignment,
    OperationError,
    OperationKind,
    OperationStatus,
)
from src.awsag.storage.history import (
    InMemoryOperationHistoryStore,
    JsonOperationHistoryStore,
    OperationFilter,
)

PS_ARN = "arn:aws:sso:::permissionSet/ssoins-test/ps-0001"


def make_operation(
    kind=OperationKind.CREATE,
    status=OperationStatus.COMPLETED,
    account_id="111111111111",
    group_id="group-1",
    age_hours=0,
):
    operation = AssignmentOperation.create(
        kind,
        assignments=[
            GroupAssignment(
                group_id=group_id,
                group_name=f"CE-AWS-Dev-{group_id}",
                account_id=account_id,
                permission_set_arn=PS_ARN,
                status=AssignmentStatus.ACTIVE,
            )
        ],
        metadata={"type": "assignment"},
    )
    operation.start_time = datetime.now(timezone.utc) - timedelta(hours=age_hours)
    operation.status = status
    return operation


class TestInMemoryOperationHistoryStore:
    """Tests for InMemoryOperationHistoryStore."""

    def setup_method(self):
        self.store = InMemoryOperationHistoryStore()

    def test_add_and_get(self):
        operation = make_operation()
        self.store.add_operation(operation)

        assert self.store.get_operation(operation.operation_id) is operation
        assert self.store.get_operation("missing") is None

    def test_add_replaces_existing_record(self):
        operation = make_operation(status=OperationStatus.IN_PROGRESS)
        self.store.add_operation(operation)
        operation.status = OperationStatus.FAILED
        self.store.update_operation(operation)

        assert len(self.store.get_all_operations()) == 1
        assert self.store.get_operation(operation.operation_id).status == OperationStatus.FAILED

    def test_newest_first(self):
        old = make_operation(age_hours=5)
        new = make_operation(age_hours=1)
        self.store.add_operation(old)
        self.store.add_operation(new)

        assert [op.operation_id for op in self.store.get_all_operations()] == [
            new.operation_id,
            old.operation_id,
        ]

    def test_filters(self):
        created = make_operation()
        deleted = make_operation(kind=OperationKind.DELETE, group_id="group-2")
        failed = make_operation(status=OperationStatus.FAILED, account_id="222222222222")
        for operation in (created, deleted, failed):
            self.store.add_operation(operation)

        by_status = self.store.get_operations(OperationFilter(status=OperationStatus.FAILED))
        assert [op.operation_id for op in by_status] == [failed.operation_id]

        by_kind = self.store.get_operations(OperationFilter(kind=OperationKind.DELETE))
        assert [op.operation_id for op in by_kind] == [deleted.operation_id]

        by_account = self.store.get_operations(OperationFilter(account_id="222222222222"))
        assert [op.operation_id for op in by_account] == [failed.operation_id]

        by_group = self.store.get_operations(OperationFilter(group_id="group-2"))
        assert [op.operation_id for op in by_group] == [deleted.operation_id]

    def test_date_range_and_limit(self):
        operations = [make_operation(age_hours=hours) for hours in (1, 10, 30, 50)]
        for operation in operations:
            self.store.add_operation(operation)
        now = datetime.now(timezone.utc)

        in_range = self.store.get_operations(
            OperationFilter(start_date=now - timedelta(hours=40), end_date=now - timedelta(hours=5))
        )
        assert [op.operation_id for op in in_range] == [
            operations[1].operation_id,
            operations[2].operation_id,
        ]

        limited = self.store.get_operations(OperationFilter(limit=2))
        assert [op.operation_id for op in limited] == [
            operations[0].operation_id,
            operations[1].operation_id,
        ]

    def test_delete_operation(self):
        operation = make_operation()
        self.store.add_operation(operation)

        assert self.store.delete_operation(operation.operation_id)
        assert not self.store.delete_operation(operation.operation_id)

    def test_statistics(self):
        self.store.add_operation(make_operation(age_hours=3))
        self.store.add_operation(make_operation(status=OperationStatus.FAILED, age_hours=2))
        self.store.add_operation(make_operation(kind=OperationKind.DELETE, age_hours=1))

        stats = self.store.get_statistics()

        assert stats["total_operations"] == 3
        assert stats["by_status"]["COMPLETED"] == 2
        assert stats["by_status"]["FAILED"] == 1
        assert stats["by_status"]["ROLLED_BACK"] == 0
        assert stats["by_kind"] == {"CREATE": 2, "DELETE": 1, "UPDATE": 0}
        assert stats["oldest_operation"] < stats["newest_operation"]

    def test_statistics_empty(self):
        stats = self.store.get_statistics()

        assert stats["total_operations"] == 0
        assert stats["oldest_operation"] is None
        assert stats["newest_operation"] is None

    def test_cleanup_applies_retention_then_max_entries(self):
        store = InMemoryOperationHistoryStore(max_entries=2, retention_days=1)
        expired = make_operation(age_hours=48)
        recent = [make_operation(age_hours=hours) for hours in (1, 2, 3)]
        for operation in [expired] + recent:
            store.add_operation(operation)

        assert store.cleanup() == 2
        assert [op.operation_id for op in store.get_all_operations()] == [
            recent[0].operation_id,
            recent[1].operation_id,
        ]


class TestJsonOperationHistoryStore:
    """Tests for JsonOperationHistoryStore."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.store = JsonOperationHistoryStore(self.temp_dir)

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir)

    def test_store_initialization(self):
        assert self.store.history_file == Path(self.temp_dir) / "operation-history.json"
        assert json.loads(self.store.history_file.read_text()) == {"operations": []}

    def test_operation_survives_reload(self):
        operation = make_operation()
        operation.errors.append(
            OperationError(code="ASSIGNMENT_FAILED", message="boom", phase="AWS_ASSIGNMENT")
        )
        operation.end_time = operation.start_time + timedelta(seconds=2)
        self.store.add_operation(operation)

        reloaded = JsonOperationHistoryStore(self.temp_dir).get_operation(operation.operation_id)

        assert reloaded.operation_id == operation.operation_id
        assert reloaded.kind == OperationKind.CREATE
        assert reloaded.status == OperationStatus.COMPLETED
        assert reloaded.start_time == operation.start_time
        assert reloaded.duration_ms == 2000
        assert reloaded.assignments[0].status == AssignmentStatus.ACTIVE
        assert reloaded.errors[0].phase == "AWS_ASSIGNMENT"
        assert reloaded.metadata == {"type": "assignment"}

    def test_update_replaces_record(self):
        operation = make_operation()
        self.store.add_operation(operation)
        operation.status = OperationStatus.ROLLED_BACK
        self.store.update_operation(operation)

        operations = self.store.get_all_operations()
        assert len(operations) == 1
        assert operations[0].status == OperationStatus.ROLLED_BACK

    def test_filters(self):
        completed = make_operation()
        failed = make_operation(status=OperationStatus.FAILED)
        self.store.add_operation(completed)
        self.store.add_operation(failed)

        matched = self.store.get_operations(OperationFilter(status=OperationStatus.FAILED))

        assert [op.operation_id for op in matched] == [failed.operation_id]

    def test_delete_operation(self):
        operation = make_operation()
        self.store.add_operation(operation)

        assert self.store.delete_operation(operation.operation_id)
        assert self.store.get_operation(operation.operation_id) is None
        assert not self.store.delete_operation(operation.operation_id)

    def test_corrupt_file_reads_as_empty(self):
        self.store.history_file.write_text("{not json")

        assert self.store.get_all_operations() == []

        operation = make_operation()
        self.store.add_operation(operation)
        assert self.store.get_operation(operation.operation_id) is not None

    def test_malformed_records_are_skipped(self):
        good = make_operation()
        self.store.add_operation(good)
        data = json.loads(self.store.history_file.read_text())
        data["operations"].append({"operation_id": "broken", "kind": "NOPE", "status": "COMPLETED"})
        self.store.history_file.write_text(json.dumps(data))

        assert [op.operation_id for op in self.store.get_all_operations()] == [good.operation_id]

    def test_cleanup(self):
        store = JsonOperationHistoryStore(self.temp_dir, max_entries=10, retention_days=1)
        store.add_operation(make_operation(age_hours=30))
        keep = make_operation(age_hours=1)
        store.add_operation(keep)

        assert store.cleanup() == 1
        assert store.cleanup() == 0
        assert [op.operation_id for op in store.get_all_operations()] == [keep.operation_id]

    def test_export_and_import(self):
        first = make_operation(age_hours=2)
        second = make_operation(age_hours=1)
        self.store.add_operation(first)
        self.store.add_operation(second)
        export_path = Path(self.temp_dir) / "export.json"

        assert self.store.export_to_file(str(export_path)) == 2
        exported = json.loads(export_path.read_text())
        assert "exported_at" in exported
        assert len(exported["operations"]) == 2

        other_dir = Path(self.temp_dir) / "other"
        other = JsonOperationHistoryStore(str(other_dir))
        other.add_operation(first)

        assert other.import_from_file(str(export_path)) == 1
        assert {op.operation_id for op in other.get_all_operations()} == {
            first.operation_id,
            second.operation_id,
        }

    def test_import_missing_file(self):
        with pytest.raises(FileNotFoundError):
            self.store.import_from_file(str(Path(self.temp_dir) / "missing.json"))
