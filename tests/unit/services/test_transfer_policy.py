"""Unit tests for transfer approval rules"""

import pytest
from decimal import Decimal
from credit_engine.app.services.transfer_policy import check_approver, evaluate_transfer, order_rules
from credit_engine.domain.credit_transfer import CreditTransfer
from credit_engine.domain.errors import ApprovalNotAuthorized, TransferRuleViolation
from credit_engine.domain.transfer_approval_rule import TransferApprovalRule


def approval_rule(id: int, **fields) -> TransferApprovalRule:
    return TransferApprovalRule(id=id, tenant_id="tenant_a", **fields)


class TestEvaluateTransfer:

    def test_no_rules_needs_default_approval(self):
        decision = evaluate_transfer([], Decimal("50"), "branch_x", "org_admin", default_approval_level=2)

        assert decision.auto_approve is False
        assert decision.required_approval_level == 2
        assert decision.rule_id is None

    def test_auto_approve_below_threshold_for_role(self):
        rules = [
            approval_rule(
                1,
                requires_approval=True,
                required_approval_level=2,
                auto_approve_below=Decimal("100"),
                auto_approve_roles=["org_admin"],
            )
        ]

        decision = evaluate_transfer(rules, Decimal("100"), "branch_x", "org_admin")

        assert decision.auto_approve is True
        assert decision.rule_id == 1

    def test_role_not_listed_needs_approval(self):
        rules = [
            approval_rule(
                1,
                auto_approve_below=Decimal("100"),
                auto_approve_roles=["org_admin"],
                required_approval_level=2,
            )
        ]

        decision = evaluate_transfer(rules, Decimal("10"), "branch_x", "viewer")

        assert decision.auto_approve is False
        assert decision.required_approval_level == 2

    def test_rule_without_approval(self):
        rules = [approval_rule(1, requires_approval=False)]

        assert evaluate_transfer(rules, Decimal("10"), "branch_x", None).auto_approve is True

    def test_restricted_destination(self):
        rules = [approval_rule(1, restricted_destinations=["branch_x"])]

        with pytest.raises(TransferRuleViolation):
            evaluate_transfer(rules, Decimal("10"), "branch_x", None)

    def test_amount_outside_every_rule(self):
        rules = [approval_rule(1, min_amount=Decimal("0"), max_amount=Decimal("500"))]

        with pytest.raises(TransferRuleViolation):
            evaluate_transfer(rules, Decimal("500.0001"), "branch_x", None)

    def test_ordering_prefers_priority_then_entity_rules(self):
        tenant_rule = approval_rule(1, priority=5)
        entity_rule = approval_rule(2, entity_id="org_1", priority=5)
        low_rule = approval_rule(3, entity_id="org_1", priority=0)
        inactive = approval_rule(4, priority=99, is_active=False)

        ordered = order_rules([low_rule, tenant_rule, inactive, entity_rule])

        assert [rule.id for rule in ordered] == [2, 1, 3]


class TestCheckApprover:

    @pytest.fixture
    def transfer(self):
        return CreditTransfer(
            id=5,
            tenant_id="tenant_a",
            source_account_key="tenant_a:org_1",
            destination_account_key="tenant_a:branch_x",
            requested_amount=Decimal("10"),
            transfer_amount=Decimal("10"),
            requested_by="alice",
            required_approval_level=2,
        )

    def test_requester_cannot_approve(self, transfer):
        with pytest.raises(ApprovalNotAuthorized):
            check_approver(transfer, "alice", 9)

    def test_level_too_low(self, transfer):
        with pytest.raises(ApprovalNotAuthorized) as exc_info:
            check_approver(transfer, "bob", 1)

        assert exc_info.value.details["required_level"] == 2

    def test_sufficient_level(self, transfer):
        check_approver(transfer, "bob", 2)
