"""Credit Transaction Repository Interface

Defines the contract for credit transaction persistence operations.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Tuple
from credit_engine.domain.credit_transaction import CreditTransaction, TransactionType


class CreditTransactionRepository(ABC):
    """
    Repository interface for CreditTransaction persistence

    Transactions are immutable and append-only for audit trail.
    Idempotency is enforced via unique idempotency_key.
    """

    @abstractmethod
    async def create(self, transaction: CreditTransaction) -> CreditTransaction:
        """
        Create a new credit transaction

        Raises:
            IntegrityError: If idempotency_key or (account_id, sequence) already exists
        """
        pass

    @abstractmethod
    async def get_by_idempotency_key(self, idempotency_key: str) -> Optional[CreditTransaction]:
        pass

    @abstractmethod
    async def get_by_id(self, transaction_id: int) -> Optional[CreditTransaction]:
        pass

    @abstractmethod
    async def list_by_account(
        self,
        account_id: int,
        transaction_type: Optional[TransactionType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[CreditTransaction], int]:
        """
        Retrieve transactions for an account, most recent first

        Returns:
            Tuple of (transactions, total count)
        """
        pass

    @abstractmethod
    async def list_ledger(self, account_id: int) -> List[CreditTransaction]:
        """Complete transaction log of an account in sequence order"""
        pass

    @abstractmethod
    async def list_in_period(
        self, account_id: int, start: datetime, end: datetime
    ) -> List[CreditTransaction]:
        pass
