"""Transfer approval policy

Evaluates TransferApprovalRules for a transfer request and checks whether
an approver may approve a pending transfer.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional
from credit_engine.domain.credit_transfer import CreditTransfer
from credit_engine.domain.errors import ApprovalNotAuthorized, TransferRuleViolation
from credit_engine.domain.transfer_approval_rule import TransferApprovalRule


@dataclass(frozen=True)
class TransferDecision:
    auto_approve: bool
    required_approval_level: int
    rule_id: Optional[int]


def order_rules(rules: Iterable[TransferApprovalRule]) -> List[TransferApprovalRule]:
    """Priority descending; entity rules before tenant-wide rules; then oldest first"""
    return sorted(
        (rule for rule in rules if rule.is_active),
        key=lambda rule: (-rule.priority, rule.entity_id is None, rule.id or 0),
    )


def evaluate_transfer(
    rules: Iterable[TransferApprovalRule],
    amount: Decimal,
    destination_entity_id: Optional[str],
    requester_role: Optional[str],
    default_approval_level: int = 1,
) -> TransferDecision:
    """
    Decide how a transfer request proceeds

    Raises:
        TransferRuleViolation: Destination restricted by a rule, or rules
            exist for the source but none covers the amount
    """
    ordered = order_rules(rules)
    if not ordered:
        return TransferDecision(auto_approve=False, required_approval_level=default_approval_level, rule_id=None)

    for rule in ordered:
        if destination_entity_id in (rule.restricted_destinations or []):
            raise TransferRuleViolation(
                f"Transfers to {destination_entity_id} are restricted by rule {rule.id}",
                {"rule_id": rule.id, "destination_entity_id": destination_entity_id},
            )

    matched = next((rule for rule in ordered if rule.applies_to(amount)), None)
    if matched is None:
        raise TransferRuleViolation(
            f"No transfer rule allows an amount of {amount}",
            {"amount": amount},
        )

    auto_approve = not matched.requires_approval or (
        matched.auto_approve_below is not None
        and amount <= matched.auto_approve_below
        and requester_role is not None
        and requester_role in (matched.auto_approve_roles or [])
    )
    return TransferDecision(
        auto_approve=auto_approve,
        required_approval_level=matched.required_approval_level,
        rule_id=matched.id,
    )


def check_approver(transfer: CreditTransfer, approver_id: str, approver_level: int) -> None:
    """
    Raises:
        ApprovalNotAuthorized: Approver is the requester or below the required level
    """
    if approver_id == transfer.requested_by:
        raise ApprovalNotAuthorized(
            f"Transfer {transfer.id} cannot be approved by its requester",
            {"transfer_id": transfer.id, "approver_id": approver_id},
        )
    if approver_level < transfer.required_approval_level:
        raise ApprovalNotAuthorized(
            f"Approval level {approver_level} is below the required level {transfer.required_approval_level}",
            {
                "transfer_id": transfer.id,
                "approver_id": approver_id,
                "approver_level": approver_level,
                "required_level": transfer.required_approval_level,
            },
        )
