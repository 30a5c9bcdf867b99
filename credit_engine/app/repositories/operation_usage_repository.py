"""Operation Usage Repository Interface"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
from credit_engine.domain.operation_usage import OperationUsage


class OperationUsageRepository(ABC):

    @abstractmethod
    async def get(
        self, account_id: int, operation_code: str, period_start: datetime, for_update: bool = False
    ) -> Optional[OperationUsage]:
        pass

    @abstractmethod
    async def create(self, usage: OperationUsage) -> OperationUsage:
        pass

    @abstractmethod
    async def save(self, usage: OperationUsage) -> OperationUsage:
        pass
