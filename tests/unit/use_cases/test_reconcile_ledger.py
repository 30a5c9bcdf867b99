"""Unit tests for ReconcileLedger use case"""

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from credit_engine.app.use_cases.jobs import ReconcileLedger
from credit_engine.domain.credit_account import CreditAccount
from credit_engine.domain.credit_transaction import CreditTransaction, TransactionType


def tx(sequence: int, transaction_type: TransactionType, amount: str, before: str, after: str, **fields) -> CreditTransaction:
    return CreditTransaction(
        id=100 + sequence,
        account_id=1,
        tenant_id="tenant_a",
        sequence=sequence,
        transaction_type=transaction_type,
        amount=Decimal(amount),
        previous_balance=Decimal(before),
        new_balance=Decimal(after),
        **fields,
    )


def account(available: str, sequence: int) -> CreditAccount:
    return CreditAccount(
        id=1,
        account_key="tenant_a:*",
        tenant_id="tenant_a",
        available_credits=Decimal(available),
        sequence=sequence,
    )


@pytest.fixture
def consistent_log():
    return [
        tx(1, TransactionType.PURCHASE, "150", "0", "150"),
        tx(2, TransactionType.CONSUMPTION, "120", "150", "30"),
        tx(3, TransactionType.RESERVATION, "10", "30", "20"),
        tx(4, TransactionType.CONSUMPTION, "10", "20", "20", reservation_id=1),
    ]


@pytest.fixture
def mock_account_repo():
    return MagicMock()


@pytest.fixture
def mock_transaction_repo(consistent_log):
    repo = MagicMock()
    repo.list_ledger = AsyncMock(return_value=consistent_log)
    return repo


@pytest.fixture
def mock_batch_repo():
    repo = MagicMock()
    repo.sum_remaining = AsyncMock(return_value=Decimal("20.0000"))
    return repo


@pytest.fixture
def use_case(mock_account_repo, mock_transaction_repo, mock_batch_repo):
    return ReconcileLedger(
        account_repo=mock_account_repo,
        transaction_repo=mock_transaction_repo,
        batch_repo=mock_batch_repo,
    )


@pytest.mark.asyncio
class TestReconcileLedger:

    async def test_consistent_account(self, use_case, mock_account_repo):
        """
        Given a log whose replay matches the account and its batches
        When reconciliation runs
        Then no discrepancy is reported
        """
        # Arrange
        mock_account_repo.get_all = AsyncMock(return_value=[account("20", 4)])

        # Act
        result = await use_case.execute()

        # Assert
        assert result.is_ok()
        assert result.value.total_accounts_checked == 1
        assert result.value.discrepancies_found == 0

    async def test_balance_mismatch(self, use_case):
        found = await use_case.check_account(account("25", 4))

        assert [d.kind for d in found] == ["balance", "batches"]
        assert found[0].expected == Decimal("20")
        assert found[0].actual == Decimal("25")

    async def test_sequence_gap(self, use_case, mock_transaction_repo, consistent_log):
        mock_transaction_repo.list_ledger = AsyncMock(return_value=[consistent_log[0], consistent_log[2]])

        found = await use_case.check_account(account("20", 3))

        kinds = [d.kind for d in found]
        assert "sequence" in kinds
        assert "continuity" in kinds

    async def test_account_sequence_ahead_of_log(self, use_case):
        found = await use_case.check_account(account("20", 5))

        assert [d.kind for d in found] == ["sequence"]

    async def test_batch_pool_mismatch(self, use_case, mock_batch_repo):
        mock_batch_repo.sum_remaining = AsyncMock(return_value=Decimal("19.9999"))

        found = await use_case.check_account(account("20", 4))

        assert [d.kind for d in found] == ["batches"]

    async def test_negative_balance_expects_empty_pool(self, use_case, mock_transaction_repo, mock_batch_repo):
        mock_transaction_repo.list_ledger = AsyncMock(
            return_value=[tx(1, TransactionType.CONSUMPTION, "5", "0", "-5")]
        )
        mock_batch_repo.sum_remaining = AsyncMock(return_value=Decimal("0"))

        assert await use_case.check_account(account("-5", 1)) == []

    async def test_repository_failure(self, use_case, mock_account_repo):
        mock_account_repo.get_all = AsyncMock(side_effect=RuntimeError("connection lost"))

        result = await use_case.execute()

        assert result.is_err()
        assert result.error.code == "RECONCILIATION_FAILED"
