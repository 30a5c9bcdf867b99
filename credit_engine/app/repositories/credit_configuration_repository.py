"""Credit Configuration Repository Interface"""

from abc import ABC, abstractmethod
from typing import List, Optional
from credit_engine.domain.credit_configuration import CreditConfiguration


class CreditConfigurationRepository(ABC):

    @abstractmethod
    async def list_active_for_tenant(self, tenant_id: str) -> List[CreditConfiguration]:
        """Active global rows plus active rows belonging to the tenant"""
        pass

    @abstractmethod
    async def get_by_scope(self, scope_key: str, operation_code: str) -> Optional[CreditConfiguration]:
        pass

    @abstractmethod
    async def create(self, configuration: CreditConfiguration) -> CreditConfiguration:
        pass

    @abstractmethod
    async def save(self, configuration: CreditConfiguration) -> CreditConfiguration:
        pass
