"""Credit Batch Repository Interface"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from decimal import Decimal
from credit_engine.domain.credit_batch import CreditBatch


class CreditBatchRepository(ABC):
    """
    Repository interface for CreditBatch persistence

    Pool queries return batches ordered soonest-expiring first, batches
    without expiry last, oldest first within the same expiry.
    """

    @abstractmethod
    async def create(self, batch: CreditBatch) -> CreditBatch:
        pass

    @abstractmethod
    async def save(self, batch: CreditBatch) -> CreditBatch:
        pass

    @abstractmethod
    async def list_pool(self, account_id: int, now: datetime, for_update: bool = False) -> List[CreditBatch]:
        """
        Batches with remaining credits that have not reached their expiry

        Args:
            account_id: Owning account
            now: Reference time for expiry
            for_update: Lock the batch rows

        Returns:
            Batches in consumption order
        """
        pass

    @abstractmethod
    async def list_due(self, account_id: int, now: datetime, for_update: bool = False) -> List[CreditBatch]:
        """Batches of one account with remaining credits at or past expiry"""
        pass

    @abstractmethod
    async def get_by_ids(self, batch_ids: List[int], for_update: bool = False) -> List[CreditBatch]:
        pass

    @abstractmethod
    async def list_account_ids_with_due_batches(self, now: datetime) -> List[int]:
        pass

    @abstractmethod
    async def list_expiring(self, now: datetime, until: datetime) -> List[CreditBatch]:
        """Batches with remaining credits expiring in (now, until]"""
        pass

    @abstractmethod
    async def sum_remaining(self, account_id: int) -> Decimal:
        pass

    @abstractmethod
    async def list_by_account(self, account_id: int) -> List[CreditBatch]:
        pass
