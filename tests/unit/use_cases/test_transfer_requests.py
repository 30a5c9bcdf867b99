"""Unit tests for RequestTransfer and ApproveTransfer validation paths"""

import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from credit_engine.app.use_cases.credits import (
    ApproveTransfer,
    ApproveTransferCommandDTO,
    RequestTransfer,
    RequestTransferCommandDTO,
)
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_transfer import CreditTransfer, TransferStatus
from credit_engine.domain.transfer_approval_rule import TransferApprovalRule


@pytest.fixture
def mock_runner():
    runner = MagicMock()
    runner.run = AsyncMock()
    return runner


@pytest.fixture
def mock_hierarchy():
    hierarchy = MagicMock()
    hierarchy.require_entity = AsyncMock()
    hierarchy.credit_owner = AsyncMock(side_effect=lambda tenant_id, entity_id: entity_id)
    return hierarchy


@pytest.fixture
def mock_transfer_repo():
    repo = MagicMock()
    repo.get_by_idempotency_key = AsyncMock(return_value=None)
    repo.get_by_id = AsyncMock(return_value=None)
    return repo


@pytest.fixture
def mock_rule_repo():
    repo = MagicMock()
    repo.list_for_source = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def request_transfer(mock_uow, mock_runner, mock_hierarchy, mock_transfer_repo, mock_rule_repo):
    return RequestTransfer(
        mock_uow,
        mock_runner,
        MagicMock(),
        mock_hierarchy,
        mock_transfer_repo,
        mock_rule_repo,
        fee_rate=Decimal("0.01"),
    )


@pytest.mark.asyncio
class TestRequestTransfer:

    async def test_same_paying_account_is_rejected(self, request_transfer, mock_hierarchy, mock_runner):
        """
        Given a destination that inherits credits from the source
        When a transfer between them is requested
        Then it is refused because both sides share one account
        """
        # Arrange
        mock_hierarchy.credit_owner = AsyncMock(return_value="org_1")
        command = RequestTransferCommandDTO(
            tenant_id="tenant_a",
            source_entity_id="org_1",
            destination_entity_id="branch_x",
            amount=Decimal("10"),
            requested_by="alice",
        )

        # Act
        result = await request_transfer.execute(command)

        # Assert
        assert result.is_err()
        assert result.error.code == "TRANSFER_RULE_VIOLATION"
        mock_runner.run.assert_not_awaited()

    async def test_recall_deadline_in_the_past(self, request_transfer):
        command = RequestTransferCommandDTO(
            tenant_id="tenant_a",
            source_entity_id="org_1",
            destination_entity_id="branch_x",
            amount=Decimal("10"),
            is_temporary=True,
            recall_deadline=utc_now() - timedelta(minutes=1),
            requested_by="alice",
        )

        result = await request_transfer.execute(command)

        assert result.is_err()
        assert result.error.code == "TRANSFER_RULE_VIOLATION"

    async def test_restricted_destination(self, request_transfer, mock_rule_repo):
        mock_rule_repo.list_for_source = AsyncMock(
            return_value=[TransferApprovalRule(id=1, tenant_id="tenant_a", restricted_destinations=["branch_x"])]
        )
        command = RequestTransferCommandDTO(
            tenant_id="tenant_a",
            source_entity_id="org_1",
            destination_entity_id="branch_x",
            amount=Decimal("10"),
            requested_by="alice",
        )

        result = await request_transfer.execute(command)

        assert result.is_err()
        assert result.error.code == "TRANSFER_RULE_VIOLATION"
        assert result.error.details["rule_id"] == 1

    async def test_idempotent_replay(self, request_transfer, mock_transfer_repo, mock_runner):
        # Arrange
        existing = CreditTransfer(
            id=9,
            tenant_id="tenant_a",
            source_entity_id="org_1",
            destination_entity_id="branch_x",
            source_account_key="tenant_a:org_1",
            destination_account_key="tenant_a:branch_x",
            requested_amount=Decimal("10"),
            transfer_amount=Decimal("10"),
            requested_by="alice",
            status=TransferStatus.PENDING,
            created_at=utc_now(),
        )
        mock_transfer_repo.get_by_idempotency_key = AsyncMock(return_value=existing)
        mock_transfer_repo.list_history = AsyncMock(return_value=[])
        command = RequestTransferCommandDTO(
            tenant_id="tenant_a",
            source_entity_id="org_1",
            destination_entity_id="branch_x",
            amount=Decimal("10"),
            requested_by="alice",
            idempotency_key="allocation-q1",
        )

        # Act
        result = await request_transfer.execute(command)

        # Assert
        assert result.is_ok()
        assert result.value.transfer_id == 9
        mock_runner.run.assert_not_awaited()

    async def test_duplicate_created_while_waiting_for_locks_is_replayed(
        self, request_transfer, mock_transfer_repo, mock_runner
    ):
        """
        Given a concurrent request with the same key commits while this one waits for the account locks
        When the locks are acquired
        Then the committed transfer is returned and no second transfer is created
        """
        # Arrange
        existing = CreditTransfer(
            id=11,
            tenant_id="tenant_a",
            source_entity_id="org_1",
            destination_entity_id="branch_x",
            source_account_key="tenant_a:org_1",
            destination_account_key="tenant_a:branch_x",
            requested_amount=Decimal("10"),
            transfer_amount=Decimal("10"),
            requested_by="alice",
            status=TransferStatus.PENDING,
            created_at=utc_now(),
        )
        mock_transfer_repo.get_by_idempotency_key = AsyncMock(side_effect=[None, existing])
        mock_transfer_repo.list_history = AsyncMock(return_value=[])
        mock_transfer_repo.create = AsyncMock()

        async def run(keys, operation):
            return await operation(0)

        mock_runner.run = AsyncMock(side_effect=run)
        command = RequestTransferCommandDTO(
            tenant_id="tenant_a",
            source_entity_id="org_1",
            destination_entity_id="branch_x",
            amount=Decimal("10"),
            requested_by="alice",
            idempotency_key="allocation-q1",
        )

        # Act
        result = await request_transfer.execute(command)

        # Assert
        assert result.is_ok()
        assert result.value.transfer_id == 11
        mock_transfer_repo.create.assert_not_awaited()


@pytest.mark.asyncio
class TestApproveTransfer:

    async def test_unknown_transfer(self, mock_uow, mock_runner, mock_transfer_repo):
        use_case = ApproveTransfer(mock_uow, mock_runner, MagicMock(), mock_transfer_repo)

        result = await use_case.execute(
            ApproveTransferCommandDTO(transfer_id=404, approver_id="bob", approver_level=3)
        )

        assert result.is_err()
        assert result.error.code == "TRANSFER_NOT_FOUND"
        mock_runner.run.assert_not_awaited()


class TestRequestTransferCommand:

    def test_temporary_transfer_needs_deadline(self):
        with pytest.raises(ValueError):
            RequestTransferCommandDTO(
                tenant_id="tenant_a",
                amount=Decimal("10"),
                is_temporary=True,
                requested_by="alice",
            )

    def test_deadline_only_for_temporary_transfers(self):
        with pytest.raises(ValueError):
            RequestTransferCommandDTO(
                tenant_id="tenant_a",
                amount=Decimal("10"),
                recall_deadline=utc_now() + timedelta(days=1),
                requested_by="alice",
            )
