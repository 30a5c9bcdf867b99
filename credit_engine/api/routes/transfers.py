"""Transfer API Routes"""

from fastapi import APIRouter, Depends, status

from credit_engine.api.error import build_command, unwrap
from credit_engine.api.schemas.credit_request import (
    ApproveTransferRequestSchema,
    RecallTransferRequestSchema,
    RejectTransferRequestSchema,
    TransferRequestSchema,
)
from credit_engine.app.use_cases.credits.dtos import (
    ApproveTransferCommandDTO,
    RecallTransferCommandDTO,
    RejectTransferCommandDTO,
    RequestTransferCommandDTO,
    TransferDTO,
)
from credit_engine.depends import CreditServices, get_credit_services

router = APIRouter(prefix="/credits/transfers", tags=["Transfers"])


@router.post("", response_model=TransferDTO, status_code=status.HTTP_201_CREATED)
async def request_transfer(request: TransferRequestSchema, services: CreditServices = Depends(get_credit_services)):
    """
    Request a transfer between two accounts of one tenant.

    Auto-approved transfers execute immediately; others stay `pending`
    until approved or rejected.
    """
    command = build_command(RequestTransferCommandDTO, **request.model_dump())
    return unwrap(await services.request_transfer().execute(command))


@router.post("/{transfer_id}/approve", response_model=TransferDTO)
async def approve_transfer(
    transfer_id: int,
    request: ApproveTransferRequestSchema,
    services: CreditServices = Depends(get_credit_services),
):
    command = build_command(ApproveTransferCommandDTO, transfer_id=transfer_id, **request.model_dump())
    return unwrap(await services.approve_transfer().execute(command))


@router.post("/{transfer_id}/reject", response_model=TransferDTO)
async def reject_transfer(
    transfer_id: int,
    request: RejectTransferRequestSchema,
    services: CreditServices = Depends(get_credit_services),
):
    command = build_command(RejectTransferCommandDTO, transfer_id=transfer_id, **request.model_dump())
    return unwrap(await services.reject_transfer().execute(command))


@router.post("/{transfer_id}/recall", response_model=TransferDTO)
async def recall_transfer(
    transfer_id: int,
    request: RecallTransferRequestSchema,
    services: CreditServices = Depends(get_credit_services),
):
    """Reverse an executed temporary transfer before its recall deadline."""
    command = build_command(RecallTransferCommandDTO, transfer_id=transfer_id, **request.model_dump())
    return unwrap(await services.recall_transfer().execute(command))
