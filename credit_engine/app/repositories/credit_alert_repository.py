"""Credit Alert Repository Interface"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Tuple
from credit_engine.domain.credit_alert import CreditAlert


class CreditAlertRepository(ABC):

    @abstractmethod
    async def create(self, alert: CreditAlert) -> CreditAlert:
        pass

    @abstractmethod
    async def mark_notified(self, alert_id: int, notified_at: datetime) -> None:
        pass

    @abstractmethod
    async def list_by_tenant(
        self, tenant_id: str, limit: int = 20, offset: int = 0
    ) -> Tuple[List[CreditAlert], int]:
        pass
