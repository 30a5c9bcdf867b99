"""Operation Charge Repository Interface"""

from abc import ABC, abstractmethod
from typing import Optional
from credit_engine.domain.operation_charge import OperationCharge


class OperationChargeRepository(ABC):

    @abstractmethod
    async def create(self, charge: OperationCharge) -> OperationCharge:
        """
        Record a charge

        Raises:
            IntegrityError: If idempotency_key already exists
        """
        pass

    @abstractmethod
    async def get_by_idempotency_key(self, idempotency_key: str) -> Optional[OperationCharge]:
        pass
