"""Integration tests for the access grant lifecycle with file-backed history."""

import json
import shutil
import tempfile

import pytest

from src.awsag.exceptions import AccessGrantValidationError, PlatformError
from src.awsag.models import AssignmentRequest, AssignmentStatus, OperationKind, OperationStatus
from src.awsag.orchestrator.workflow import AssignmentOrchestrator
from src.awsag.storage.history import JsonOperationHistoryStore, OperationFilter
from src.awsag.storage.workflow_state import InMemoryWorkflowStateStore
from src.awsag.utils.retry import RetryConfig, RetryExecutor
from tests.fixtures.clients import FakeIdentityClient, FakePlatformClient
from tests.fixtures.orchestrator import ACCOUNT_MAPPING, make_config, make_grant_request


async def no_sleep(_delay):
    return None


@pytest.mark.integration
class TestAccessGrantLifecycle:
    """Grant, inspect, validate and roll back access grants end to end."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.identity = FakeIdentityClient()
        self.platform = FakePlatformClient()
        self.history = JsonOperationHistoryStore(self.temp_dir)
        self.orchestrator = AssignmentOrchestrator(
            identity_client=self.identity,
            platform_client=self.platform,
            config=make_config(),
            history_store=self.history,
            workflow_states=InMemoryWorkflowStateStore(),
            retry_executor=RetryExecutor(RetryConfig(base_delay=0, max_delay=0), sleep=no_sleep),
        )

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir)

    def stored_statuses(self):
        data = json.loads(self.history.history_file.read_text())
        return {op["operation_id"]: op["status"] for op in data["operations"]}

    @pytest.mark.asyncio
    async def test_grant_validate_and_roll_back(self):
        grant = await self.orchestrator.create_access_grant(make_grant_request())
        operation_id = grant.operation.operation_id

        assert self.stored_statuses() == {operation_id: "COMPLETED"}
        stored = self.orchestrator.get_operation_status(operation_id)
        assert stored.metadata["group_name"] == "CE-AWS-Dev-AG-0042"
        assert stored.assignments[0].status == AssignmentStatus.ACTIVE

        report = await self.orchestrator.validate_access_grant("CE-AWS-Dev-AG-0042")
        assert report.validation_results.users_can_access

        result = await self.orchestrator.rollback_operation(operation_id)

        assert result.success
        assert self.stored_statuses() == {operation_id: "ROLLED_BACK"}
        assert self.identity.groups == {}
        assert self.platform.permission_sets == {}
        assert self.platform.assignments == []
        with pytest.raises(AccessGrantValidationError):
            await self.orchestrator.validate_access_grant("CE-AWS-Dev-AG-0042")

    @pytest.mark.asyncio
    async def test_failed_grant_is_recorded_and_cleaned_up(self):
        self.platform.failures["assign_group_to_account"] = PlatformError("Account is suspended")

        with pytest.raises(PlatformError):
            await self.orchestrator.create_access_grant(make_grant_request(environment="Prod"))

        failed = self.orchestrator.list_operations(OperationFilter(status=OperationStatus.FAILED))
        assert len(failed) == 1
        assert failed[0].errors[0].phase == "AWS_ACCOUNT_ASSIGNMENT"
        assert self.identity.groups == {}
        assert self.platform.permission_sets == {}

    @pytest.mark.asyncio
    async def test_grants_across_environments(self):
        await self.orchestrator.create_access_grant(make_grant_request())
        await self.orchestrator.create_access_grant(
            make_grant_request(environment="Staging", ticket_id="AG-0100", permission_template="developer")
        )

        staging = self.orchestrator.list_access_grants("Staging")

        assert len(staging) == 1
        assert staging[0].assignments[0].account_id == ACCOUNT_MAPPING["Staging"]
        assert len(self.orchestrator.list_access_grants()) == 2
        assert self.history.get_statistics()["by_status"]["COMPLETED"] == 2

    @pytest.mark.asyncio
    async def test_bulk_assign_then_remove(self):
        for index in (1, 2):
            self.identity.add_group(f"azure-existing-{index}", f"CE-AWS-Dev-AG-100{index}")
        permission_set = self.platform.add_permission_set("SharedReadOnly")
        requests = [
            AssignmentRequest(
                group_id=f"azure-existing-{index}",
                account_id=ACCOUNT_MAPPING["Dev"],
                permission_set_arn=permission_set.arn,
            )
            for index in (1, 2)
        ]

        bulk = await self.orchestrator.bulk_assign(requests)
        assert bulk.status == OperationStatus.COMPLETED
        assert len(self.platform.assignments) == 2

        removal = await self.orchestrator.remove_assignment(requests[0])
        assert removal.kind == OperationKind.DELETE
        assert removal.status == OperationStatus.COMPLETED
        assert not self.platform.has_assignment(
            "azure-existing-1", ACCOUNT_MAPPING["Dev"], permission_set.arn
        )

        await self.orchestrator.rollback_operation(removal.operation_id)
        assert self.platform.has_assignment(
            "azure-existing-1", ACCOUNT_MAPPING["Dev"], permission_set.arn
        )
        assert self.stored_statuses() == {
            bulk.operation_id: "COMPLETED",
            removal.operation_id: "ROLLED_BACK",
        }
