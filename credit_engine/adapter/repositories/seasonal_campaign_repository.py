"""SQLAlchemy implementation of SeasonalCampaignRepository"""

from typing import List, Optional
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from credit_engine.app.repositories.seasonal_campaign_repository import SeasonalCampaignRepository
from credit_engine.domain.base import utc_now
from credit_engine.domain.seasonal_campaign import CampaignAllocation, CampaignStatus, SeasonalCampaign


class SqlAlchemySeasonalCampaignRepository(SeasonalCampaignRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, campaign: SeasonalCampaign) -> SeasonalCampaign:
        self.session.add(campaign)
        await self.session.flush()
        await self.session.refresh(campaign)
        return campaign

    async def get_by_id(self, campaign_id: int, for_update: bool = False) -> Optional[SeasonalCampaign]:
        stmt = select(SeasonalCampaign).where(SeasonalCampaign.id == campaign_id)

        if for_update:
            stmt = stmt.with_for_update()

        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def save(self, campaign: SeasonalCampaign) -> SeasonalCampaign:
        campaign.updated_at = utc_now()
        self.session.add(campaign)
        await self.session.flush()
        return campaign

    async def list_campaigns(self, status: Optional[CampaignStatus] = None) -> List[SeasonalCampaign]:
        stmt = select(SeasonalCampaign)
        if status is not None:
            stmt = stmt.where(SeasonalCampaign.status == status)
        stmt = stmt.order_by(SeasonalCampaign.created_at.desc(), SeasonalCampaign.id.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add_allocation(self, allocation: CampaignAllocation) -> CampaignAllocation:
        self.session.add(allocation)
        await self.session.flush()
        await self.session.refresh(allocation)
        return allocation

    async def list_allocations(self, campaign_id: int) -> List[CampaignAllocation]:
        stmt = (
            select(CampaignAllocation)
            .where(CampaignAllocation.campaign_id == campaign_id)
            .order_by(CampaignAllocation.tenant_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
