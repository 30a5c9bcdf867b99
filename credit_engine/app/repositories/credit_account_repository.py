"""Credit Account Repository Interface

Defines the contract for credit account persistence operations.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
from credit_engine.domain.credit_account import CreditAccount


class CreditAccountRepository(ABC):
    """
    Repository interface for CreditAccount persistence

    Methods use pessimistic locking (SELECT FOR UPDATE) to ensure
    consistency during concurrent credit operations.
    """

    @abstractmethod
    async def get_by_key(self, account_key: str, for_update: bool = False) -> Optional[CreditAccount]:
        """
        Retrieve account by its tenant/entity key

        Args:
            account_key: Key built with CreditAccount.key_for
            for_update: If True, lock the row with SELECT FOR UPDATE (pessimistic lock)

        Returns:
            CreditAccount if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_by_id(self, account_id: int, for_update: bool = False) -> Optional[CreditAccount]:
        pass

    @abstractmethod
    async def create(self, account: CreditAccount) -> CreditAccount:
        """
        Create a new credit account

        Returns:
            Created CreditAccount with generated ID
        """
        pass

    @abstractmethod
    async def save(self, account: CreditAccount) -> CreditAccount:
        """
        Persist balance and counter changes

        Note:
            Should be called within a transaction with the account already locked
        """
        pass

    @abstractmethod
    async def get_all(self) -> List[CreditAccount]:
        pass
