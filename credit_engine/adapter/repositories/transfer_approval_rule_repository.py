"""SQLAlchemy implementation of TransferApprovalRuleRepository"""

from typing import List, Optional
from sqlmodel import select, or_
from sqlmodel.ext.asyncio.session import AsyncSession
from credit_engine.app.repositories.transfer_approval_rule_repository import TransferApprovalRuleRepository
from credit_engine.domain.transfer_approval_rule import TransferApprovalRule


class SqlAlchemyTransferApprovalRuleRepository(TransferApprovalRuleRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_source(self, tenant_id: str, entity_id: Optional[str]) -> List[TransferApprovalRule]:
        scope = TransferApprovalRule.entity_id.is_(None)
        if entity_id is not None:
            scope = or_(scope, TransferApprovalRule.entity_id == entity_id)

        stmt = (
            select(TransferApprovalRule)
            .where(
                TransferApprovalRule.tenant_id == tenant_id,
                TransferApprovalRule.is_active == True,  # noqa: E712
                scope,
            )
            .order_by(TransferApprovalRule.priority.desc(), TransferApprovalRule.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, rule: TransferApprovalRule) -> TransferApprovalRule:
        self.session.add(rule)
        await self.session.flush()
        await self.session.refresh(rule)
        return rule
