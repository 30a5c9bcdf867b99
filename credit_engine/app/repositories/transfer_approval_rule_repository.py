"""Transfer Approval Rule Repository Interface"""

from abc import ABC, abstractmethod
from typing import List, Optional
from credit_engine.domain.transfer_approval_rule import TransferApprovalRule


class TransferApprovalRuleRepository(ABC):

    @abstractmethod
    async def list_for_source(self, tenant_id: str, entity_id: Optional[str]) -> List[TransferApprovalRule]:
        """Active tenant-wide rules plus active rules for the source entity"""
        pass

    @abstractmethod
    async def create(self, rule: TransferApprovalRule) -> TransferApprovalRule:
        pass
