"""Unit tests for LedgerTransactionRunner"""

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from credit_engine.app.services.account_locks import AccountLockManager
from credit_engine.app.services.ledger_runner import LedgerTransactionRunner
from credit_engine.domain.errors import ExpiredBatchReferenced, InsufficientCredits, LockTimeout


@pytest.fixture
def mock_alerts():
    alerts = MagicMock()
    alerts.pending = []
    alerts.deliver = AsyncMock(return_value=0)
    return alerts


@pytest.fixture
def runner(mock_uow, mock_alerts):
    return LedgerTransactionRunner(
        mock_uow,
        AccountLockManager(timeout_seconds=1),
        mock_alerts,
        gateway=MagicMock(),
        max_retries=2,
    )


@pytest.mark.asyncio
class TestLedgerTransactionRunner:

    async def test_commits_and_returns_result(self, runner, mock_uow):
        # Arrange
        operation = AsyncMock(return_value="done")

        # Act
        result = await runner.run(["tenant_a:*"], operation)

        # Assert
        assert result == "done"
        operation.assert_awaited_once_with(0)
        mock_uow.commit.assert_awaited_once()
        mock_uow.rollback.assert_not_awaited()

    async def test_retries_expired_batch_with_next_attempt(self, runner, mock_uow, mock_alerts):
        """
        Given an operation that references a batch which expired meanwhile
        When the runner executes it
        Then it rolls back, discards alerts and retries with attempt 1
        """
        # Arrange
        operation = AsyncMock(side_effect=[ExpiredBatchReferenced(9), "moved"])

        # Act
        result = await runner.run(["tenant_a:x", "tenant_a:y"], operation)

        # Assert
        assert result == "moved"
        assert [call.args[0] for call in operation.await_args_list] == [0, 1]
        mock_uow.rollback.assert_awaited_once()
        mock_alerts.discard.assert_called()
        mock_uow.commit.assert_awaited_once()

    async def test_gives_up_after_max_retries(self, runner, mock_uow):
        # Arrange
        operation = AsyncMock(side_effect=LockTimeout(["tenant_a:*"], 1))

        # Act & Assert
        with pytest.raises(LockTimeout):
            await runner.run(["tenant_a:*"], operation)

        assert operation.await_count == 3
        assert mock_uow.rollback.await_count == 3
        mock_uow.commit.assert_not_awaited()

    async def test_business_errors_are_not_retried(self, runner, mock_uow, mock_alerts):
        # Arrange
        error = InsufficientCredits("tenant_a:*", Decimal("10"), Decimal("5"), Decimal("5"))
        operation = AsyncMock(side_effect=error)

        # Act & Assert
        with pytest.raises(InsufficientCredits):
            await runner.run(["tenant_a:*"], operation)

        operation.assert_awaited_once()
        mock_uow.rollback.assert_awaited_once()
        mock_alerts.discard.assert_called_once()

    async def test_alerts_delivered_after_commit(self, runner, mock_uow, mock_alerts):
        # Arrange
        mock_alerts.pending = [MagicMock()]
        mock_alerts.deliver = AsyncMock(return_value=1)

        # Act
        await runner.run(["tenant_a:*"], AsyncMock(return_value=None))

        # Assert
        mock_alerts.deliver.assert_awaited_once()
        assert mock_uow.commit.await_count == 2

    async def test_alert_delivery_failure_does_not_fail_operation(self, runner, mock_uow, mock_alerts):
        # Arrange
        mock_alerts.pending = [MagicMock()]
        mock_alerts.deliver = AsyncMock(side_effect=RuntimeError("gateway down"))

        # Act
        result = await runner.run(["tenant_a:*"], AsyncMock(return_value="ok"))

        # Assert
        assert result == "ok"
        mock_uow.rollback.assert_awaited_once()
