"""Seasonal Campaign Repository Interface"""

from abc import ABC, abstractmethod
from typing import List, Optional
from credit_engine.domain.seasonal_campaign import CampaignAllocation, CampaignStatus, SeasonalCampaign


class SeasonalCampaignRepository(ABC):

    @abstractmethod
    async def create(self, campaign: SeasonalCampaign) -> SeasonalCampaign:
        pass

    @abstractmethod
    async def get_by_id(self, campaign_id: int, for_update: bool = False) -> Optional[SeasonalCampaign]:
        pass

    @abstractmethod
    async def save(self, campaign: SeasonalCampaign) -> SeasonalCampaign:
        pass

    @abstractmethod
    async def list_campaigns(self, status: Optional[CampaignStatus] = None) -> List[SeasonalCampaign]:
        """Newest first"""
        pass

    @abstractmethod
    async def add_allocation(self, allocation: CampaignAllocation) -> CampaignAllocation:
        pass

    @abstractmethod
    async def list_allocations(self, campaign_id: int) -> List[CampaignAllocation]:
        pass
