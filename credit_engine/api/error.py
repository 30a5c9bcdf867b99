"""HTTP error mapping

Use cases return error Results; routes turn them into ClientError, which the
application renders as ``{"error": {"code", "message", "reason", "details"}}``.
"""

from typing import Optional, Type, TypeVar
from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from libs.result import Error, Result

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

STATUS_BY_CODE = {
    "INSUFFICIENT_CREDITS": status.HTTP_402_PAYMENT_REQUIRED,
    "APPROVAL_NOT_AUTHORIZED": status.HTTP_403_FORBIDDEN,
    "CONFIGURATION_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "ENTITY_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "TRANSFER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "RESERVATION_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "CAMPAIGN_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVALID_TRANSFER_STATE": status.HTTP_409_CONFLICT,
    "INVALID_RESERVATION_STATE": status.HTTP_409_CONFLICT,
    "INVALID_CAMPAIGN_STATE": status.HTTP_409_CONFLICT,
    "ACCOUNT_FROZEN": status.HTTP_409_CONFLICT,
    "LOCK_TIMEOUT": status.HTTP_409_CONFLICT,
    "EXPIRED_BATCH_REFERENCED": status.HTTP_409_CONFLICT,
    "TRANSFER_RULE_VIOLATION": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "INVALID_HIERARCHY": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "VALIDATION_ERROR": status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def status_for(code: str) -> int:
    return STATUS_BY_CODE.get(code, status.HTTP_400_BAD_REQUEST)


class ClientError(Exception):
    def __init__(self, error: Error, status_code: Optional[int] = None):
        super().__init__(error.message)
        self.error = error
        self.status_code = status_code or status_for(error.code)


async def client_error_handler(request: Request, exc: ClientError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder({"error": exc.error.to_dict()}),
    )


def unwrap(result: Result[T]) -> T:
    """Value of a successful Result; ClientError otherwise"""
    if result.is_err():
        raise ClientError(result.error)
    return result.value


def build_command(model: Type[M], **data) -> M:
    """Build a use-case command, reporting cross-field validation failures as 422"""
    try:
        return model(**data)
    except ValidationError as e:
        raise ClientError(
            Error(
                code="VALIDATION_ERROR",
                message="Invalid request parameters",
                reason=str(e),
                details={"errors": jsonable_encoder(e.errors(include_url=False, include_context=False))},
            )
        )
