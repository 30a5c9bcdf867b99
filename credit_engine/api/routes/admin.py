"""Administration API Routes: configuration rules, the entity registry and seasonal campaigns"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status

from credit_engine.api.error import build_command, unwrap
from credit_engine.api.schemas.credit_request import (
    CampaignActionRequestSchema,
    CampaignRequestSchema,
    ConfigurationRequestSchema,
    EntityRequestSchema,
    ExtendCampaignRequestSchema,
    MoveEntityRequestSchema,
)
from credit_engine.app.use_cases.credits.dtos import (
    CampaignDistributionResultDTO,
    CampaignDTO,
    CampaignExtensionDTO,
    CampaignStatusDTO,
    ConfigurationDTO,
    CreateCampaignCommandDTO,
    DistributeCampaignCommandDTO,
    EntityDTO,
    ExtendCampaignCommandDTO,
    MoveEntityCommandDTO,
    RegisterEntityCommandDTO,
    UpsertConfigurationCommandDTO,
)
from credit_engine.depends import CreditServices, get_credit_services
from credit_engine.domain.seasonal_campaign import CampaignStatus

router = APIRouter(tags=["Administration"])


@router.put("/credits/configurations", response_model=ConfigurationDTO)
async def upsert_configuration(
    request: ConfigurationRequestSchema, services: CreditServices = Depends(get_credit_services)
):
    """Create or update the rule for one tier and operation code."""
    command = build_command(UpsertConfigurationCommandDTO, **request.model_dump())
    return unwrap(await services.upsert_configuration().execute(command))


@router.post("/entities", response_model=EntityDTO, status_code=status.HTTP_201_CREATED)
async def register_entity(request: EntityRequestSchema, services: CreditServices = Depends(get_credit_services)):
    command = build_command(RegisterEntityCommandDTO, **request.model_dump())
    return unwrap(await services.register_entity().execute(command))


@router.put("/entities/{entity_id}/parent", response_model=EntityDTO)
async def move_entity(
    entity_id: str,
    request: MoveEntityRequestSchema,
    services: CreditServices = Depends(get_credit_services),
):
    command = build_command(MoveEntityCommandDTO, entity_id=entity_id, **request.model_dump())
    return unwrap(await services.move_entity().execute(command))


@router.post("/campaigns", response_model=CampaignDTO, status_code=status.HTTP_201_CREATED)
async def create_campaign(request: CampaignRequestSchema, services: CreditServices = Depends(get_credit_services)):
    command = build_command(CreateCampaignCommandDTO, **request.model_dump())
    return unwrap(await services.create_campaign().execute(command))


@router.get("/campaigns", response_model=List[CampaignDTO])
async def list_campaigns(
    status_filter: Optional[CampaignStatus] = Query(default=None, alias="status"),
    services: CreditServices = Depends(get_credit_services),
):
    return unwrap(await services.list_campaigns().execute(status_filter))


@router.get("/campaigns/{campaign_id}", response_model=CampaignStatusDTO)
async def get_campaign_status(campaign_id: int, services: CreditServices = Depends(get_credit_services)):
    """Campaign, per-tenant allocations and how much of the granted credit was used."""
    return unwrap(await services.get_campaign_status().execute(campaign_id))


@router.post("/campaigns/{campaign_id}/distribute", response_model=CampaignDistributionResultDTO)
async def distribute_campaign(
    campaign_id: int,
    request: CampaignActionRequestSchema,
    services: CreditServices = Depends(get_credit_services),
):
    """Grant the campaign's credits, one ledger transaction per tenant."""
    command = build_command(DistributeCampaignCommandDTO, campaign_id=campaign_id, **request.model_dump())
    return unwrap(await services.distribute_campaign().execute(command))


@router.post("/campaigns/{campaign_id}/extend", response_model=CampaignExtensionDTO)
async def extend_campaign(
    campaign_id: int,
    request: ExtendCampaignRequestSchema,
    services: CreditServices = Depends(get_credit_services),
):
    command = build_command(ExtendCampaignCommandDTO, campaign_id=campaign_id, **request.model_dump())
    return unwrap(await services.extend_campaign().execute(command))
