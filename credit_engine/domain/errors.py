"""Credit domain errors

Every error carries a stable ``code`` used by use cases and the HTTP layer,
plus ``details`` with enough context (account, amounts) for the caller to act.
"""

from decimal import Decimal
from typing import Any, Dict, Optional
from libs.result import Error


class CreditError(Exception):
    code = "CREDIT_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_error(self) -> Error:
        return Error(
            code=self.code,
            message=self.message,
            reason=self.__class__.__name__,
            details={k: str(v) if isinstance(v, Decimal) else v for k, v in self.details.items()},
        )


class ConfigurationNotFound(CreditError):
    code = "CONFIGURATION_NOT_FOUND"

    def __init__(self, tenant_id: str, entity_id: Optional[str], operation_code: str):
        super().__init__(
            f"No credit configuration matches operation {operation_code}",
            {"tenant_id": tenant_id, "entity_id": entity_id, "operation_code": operation_code},
        )


class InsufficientCredits(CreditError):
    code = "INSUFFICIENT_CREDITS"

    def __init__(self, account_key: str, required: Decimal, available: Decimal, shortfall: Decimal):
        super().__init__(
            f"Insufficient credits. Required: {required}, Available: {available}",
            {
                "account": account_key,
                "required": required,
                "available": available,
                "shortfall": shortfall,
            },
        )
        self.shortfall = shortfall


class InvalidHierarchy(CreditError):
    code = "INVALID_HIERARCHY"


class EntityNotFound(CreditError):
    code = "ENTITY_NOT_FOUND"

    def __init__(self, entity_id: str):
        super().__init__(f"Entity {entity_id} not found", {"entity_id": entity_id})


class AccountFrozen(CreditError):
    code = "ACCOUNT_FROZEN"

    def __init__(self, account_key: str, reason: Optional[str] = None):
        super().__init__(
            f"Credit account {account_key} is frozen",
            {"account": account_key, "frozen_reason": reason},
        )


class ApprovalNotAuthorized(CreditError):
    code = "APPROVAL_NOT_AUTHORIZED"


class TransferRuleViolation(CreditError):
    code = "TRANSFER_RULE_VIOLATION"


class InvalidTransferState(CreditError):
    code = "INVALID_TRANSFER_STATE"


class TransferNotFound(CreditError):
    code = "TRANSFER_NOT_FOUND"

    def __init__(self, transfer_id: int):
        super().__init__(f"Transfer {transfer_id} not found", {"transfer_id": transfer_id})


class ReservationNotFound(CreditError):
    code = "RESERVATION_NOT_FOUND"

    def __init__(self, reservation_id: int):
        super().__init__(f"Reservation {reservation_id} not found", {"reservation_id": reservation_id})


class InvalidReservationState(CreditError):
    code = "INVALID_RESERVATION_STATE"


class LockTimeout(CreditError):
    code = "LOCK_TIMEOUT"

    def __init__(self, account_keys, timeout: float):
        super().__init__(
            f"Timed out after {timeout}s waiting for account lock",
            {"accounts": list(account_keys), "timeout_seconds": timeout},
        )


class ExpiredBatchReferenced(CreditError):
    code = "EXPIRED_BATCH_REFERENCED"

    def __init__(self, batch_id: int):
        super().__init__(f"Credit batch {batch_id} has expired", {"batch_id": batch_id})


class CampaignNotFound(CreditError):
    code = "CAMPAIGN_NOT_FOUND"

    def __init__(self, campaign_id: int):
        super().__init__(f"Campaign {campaign_id} not found", {"campaign_id": campaign_id})


class InvalidCampaignState(CreditError):
    code = "INVALID_CAMPAIGN_STATE"
