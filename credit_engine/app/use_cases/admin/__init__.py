"""Administrative use cases: configuration rules, entity registry, account freeze, seasonal campaigns"""

from .upsert_configuration import UpsertConfiguration, configuration_to_dto
from .manage_entities import RegisterEntity, MoveEntity, entity_to_dto, hierarchy_lock_key
from .set_account_frozen import SetAccountFrozen
from .seasonal_campaigns import (
    CreateCampaign,
    DistributeCampaign,
    ExtendCampaignExpiry,
    GetCampaignStatus,
    ListCampaigns,
    campaign_to_dto,
)

__all__ = [
    "UpsertConfiguration",
    "configuration_to_dto",
    "RegisterEntity",
    "MoveEntity",
    "entity_to_dto",
    "hierarchy_lock_key",
    "SetAccountFrozen",
    "CreateCampaign",
    "DistributeCampaign",
    "ExtendCampaignExpiry",
    "GetCampaignStatus",
    "ListCampaigns",
    "campaign_to_dto",
]
