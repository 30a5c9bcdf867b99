"""Credit Transfer Repository Interface"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from credit_engine.domain.credit_transfer import CreditTransfer, TransferHistory


class CreditTransferRepository(ABC):

    @abstractmethod
    async def create(self, transfer: CreditTransfer) -> CreditTransfer:
        pass

    @abstractmethod
    async def get_by_id(self, transfer_id: int, for_update: bool = False) -> Optional[CreditTransfer]:
        pass

    @abstractmethod
    async def get_by_idempotency_key(self, idempotency_key: str) -> Optional[CreditTransfer]:
        pass

    @abstractmethod
    async def save(self, transfer: CreditTransfer) -> CreditTransfer:
        pass

    @abstractmethod
    async def list_lapsed_temporary(self, now: datetime) -> List[CreditTransfer]:
        """Executed temporary transfers still approved after their recall deadline"""
        pass

    @abstractmethod
    async def add_history(self, history: TransferHistory) -> TransferHistory:
        pass

    @abstractmethod
    async def list_history(self, transfer_id: int) -> List[TransferHistory]:
        pass
