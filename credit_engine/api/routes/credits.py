"""Credit API Routes

FastAPI routes for charging, purchasing, reservations and ledger queries.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from credit_engine.api.error import build_command, unwrap
from credit_engine.api.schemas.credit_request import (
    ChargeRequestSchema,
    EstimateRequestSchema,
    FreezeRequestSchema,
    PaymentCompletedRequestSchema,
    PurchaseRequestSchema,
    ReservationActionRequestSchema,
    ReserveRequestSchema,
    ResolveRequestSchema,
)
from credit_engine.app.use_cases.credits.dtos import (
    AccountStatusDTO,
    BalanceResponseDTO,
    ChargeOperationCommandDTO,
    ChargeResultDTO,
    CreditGrantResponseDTO,
    EstimateCommandDTO,
    EstimateResponseDTO,
    ListTransactionsQueryDTO,
    PurchaseCompletedEventDTO,
    PurchaseCreditsCommandDTO,
    ReservationActionCommandDTO,
    ReservationDTO,
    ReserveCreditsCommandDTO,
    ResolveCostQueryDTO,
    ResolvedCostDTO,
    SetAccountFrozenCommandDTO,
    TransactionListResponseDTO,
    UsageSummaryDTO,
    UsageSummaryQueryDTO,
)
from credit_engine.depends import CreditServices, get_credit_services
from credit_engine.domain.credit_transaction import TransactionType

router = APIRouter(prefix="/credits", tags=["Credits"])


@router.post(
    "/charge",
    response_model=ChargeResultDTO,
    status_code=status.HTTP_200_OK,
    responses={
        402: {
            "description": "Insufficient credits",
            "content": {
                "application/json": {
                    "example": {
                        "error": {
                            "code": "INSUFFICIENT_CREDITS",
                            "message": "Insufficient credits: required 100.0000, available 50.0000",
                            "reason": "InsufficientCredits",
                            "details": {"shortfall": "50.0000"},
                        }
                    }
                }
            },
        },
        404: {"description": "No configuration matches the operation"},
        409: {"description": "Account frozen or busy"},
    },
)
async def charge_operation(request: ChargeRequestSchema, services: CreditServices = Depends(get_credit_services)):
    """
    Charge a priced operation against the account that pays for the entity.

    The cost is resolved entity, then tenant, then global configuration.
    Quantity inside the free allowance is not billed. Repeating an
    `idempotency_key` returns the original charge with `replayed = true`.
    """
    command = build_command(ChargeOperationCommandDTO, **request.model_dump())
    return unwrap(await services.charge_operation().execute(command))


@router.post("/estimate", response_model=EstimateResponseDTO)
async def estimate_charge(request: EstimateRequestSchema, services: CreditServices = Depends(get_credit_services)):
    """Preview a charge without changing any balance."""
    command = build_command(EstimateCommandDTO, **request.model_dump())
    return unwrap(await services.estimate_charge().execute(command))


@router.post("/resolve", response_model=ResolvedCostDTO)
async def resolve_cost(request: ResolveRequestSchema, services: CreditServices = Depends(get_credit_services)):
    """Show which configuration rule prices an operation for an entity."""
    query = build_command(ResolveCostQueryDTO, **request.model_dump())
    return unwrap(await services.resolve_cost().execute(query))


@router.post("/purchase", response_model=CreditGrantResponseDTO, status_code=status.HTTP_201_CREATED)
async def purchase_credits(request: PurchaseRequestSchema, services: CreditServices = Depends(get_credit_services)):
    """
    Add a batch of credits.

    Settles any overage debt first; the new batch holds the remainder.
    """
    command = build_command(PurchaseCreditsCommandDTO, **request.model_dump())
    return unwrap(await services.purchase_credits().execute(command))


@router.post("/payments/completed", response_model=CreditGrantResponseDTO)
async def payment_completed(
    request: PaymentCompletedRequestSchema, services: CreditServices = Depends(get_credit_services)
):
    """Payment collaborator webhook. Idempotent on `payment_reference`."""
    event = build_command(PurchaseCompletedEventDTO, **request.model_dump())
    return unwrap(await services.purchase_completed().execute(event))


@router.get("/balance/{tenant_id}", response_model=BalanceResponseDTO)
async def get_balance(
    tenant_id: str,
    entity_id: Optional[str] = Query(default=None, description="Entity (omit for the tenant-level account)"),
    services: CreditServices = Depends(get_credit_services),
):
    return unwrap(await services.get_balance().execute(tenant_id, entity_id))


@router.get("/transactions/{tenant_id}", response_model=TransactionListResponseDTO)
async def list_transactions(
    tenant_id: str,
    entity_id: Optional[str] = Query(default=None),
    transaction_type: Optional[TransactionType] = Query(default=None),
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    services: CreditServices = Depends(get_credit_services),
):
    """Ledger entries of the paying account, newest first."""
    query = build_command(
        ListTransactionsQueryDTO,
        tenant_id=tenant_id,
        entity_id=entity_id,
        transaction_type=transaction_type,
        start=start,
        end=end,
        limit=limit,
        offset=offset,
    )
    return unwrap(await services.list_transactions().execute(query))


@router.get("/usage/{tenant_id}", response_model=UsageSummaryDTO)
async def get_usage_summary(
    tenant_id: str,
    period_start: datetime = Query(...),
    period_end: datetime = Query(...),
    entity_id: Optional[str] = Query(default=None),
    services: CreditServices = Depends(get_credit_services),
):
    query = build_command(
        UsageSummaryQueryDTO,
        tenant_id=tenant_id,
        entity_id=entity_id,
        period_start=period_start,
        period_end=period_end,
    )
    return unwrap(await services.get_usage_summary().execute(query))


@router.post("/reservations", response_model=ReservationDTO, status_code=status.HTTP_201_CREATED)
async def reserve_credits(request: ReserveRequestSchema, services: CreditServices = Depends(get_credit_services)):
    """Hold credits for a pending operation until commit, release or deadline."""
    command = build_command(ReserveCreditsCommandDTO, **request.model_dump())
    return unwrap(await services.reserve_credits().execute(command))


@router.post("/reservations/{reservation_id}/commit", response_model=ReservationDTO)
async def commit_reservation(
    reservation_id: int,
    request: Optional[ReservationActionRequestSchema] = None,
    services: CreditServices = Depends(get_credit_services),
):
    body = request.model_dump() if request else {}
    command = build_command(ReservationActionCommandDTO, reservation_id=reservation_id, **body)
    return unwrap(await services.commit_reservation().execute(command))


@router.post("/reservations/{reservation_id}/release", response_model=ReservationDTO)
async def release_reservation(
    reservation_id: int,
    request: Optional[ReservationActionRequestSchema] = None,
    services: CreditServices = Depends(get_credit_services),
):
    body = request.model_dump() if request else {}
    command = build_command(ReservationActionCommandDTO, reservation_id=reservation_id, **body)
    return unwrap(await services.release_reservation().execute(command))


@router.post("/accounts/freeze", response_model=AccountStatusDTO)
async def freeze_account(request: FreezeRequestSchema, services: CreditServices = Depends(get_credit_services)):
    """Refuse consumption, reservations and outgoing transfers on the account."""
    command = build_command(SetAccountFrozenCommandDTO, frozen=True, **request.model_dump())
    return unwrap(await services.set_account_frozen().execute(command))


@router.post("/accounts/unfreeze", response_model=AccountStatusDTO)
async def unfreeze_account(request: FreezeRequestSchema, services: CreditServices = Depends(get_credit_services)):
    command = build_command(SetAccountFrozenCommandDTO, frozen=False, **request.model_dump())
    return unwrap(await services.set_account_frozen().execute(command))
