"""Unit tests for the pure ledger helpers: draw planning, debt settlement,
transfer fee trimming and expiry warning windows"""

from datetime import datetime, timedelta
from decimal import Decimal
from credit_engine.app.services.ledger_store import BatchDraw, plan_draws, settle_debt
from credit_engine.app.use_cases.credits.transfer_workflow import portions_after_fee
from credit_engine.app.use_cases.jobs.run_expiry_sweep import warning_window
from credit_engine.domain.credit_batch import BatchSource, CreditBatch

NOW = datetime(2026, 5, 1)


def batch(id: int, remaining: str, days: int = 30) -> CreditBatch:
    return CreditBatch(
        id=id,
        account_id=1,
        amount=Decimal(remaining),
        remaining_amount=Decimal(remaining),
        expiry_date=NOW + timedelta(days=days),
        source=BatchSource.PURCHASE,
    )


class TestPlanDraws:

    def test_takes_in_order_until_covered(self):
        """
        Given batches of 100 and 50 credits
        When 120 credits are planned
        Then the first batch is emptied and 20 come from the second
        """
        first, second = batch(1, "100"), batch(2, "50")

        plan, shortfall = plan_draws([first, second], Decimal("120"))

        assert [(b.id, take) for b, take in plan] == [(1, Decimal("100")), (2, Decimal("20"))]
        assert shortfall == Decimal("0")

    def test_reports_shortfall(self):
        plan, shortfall = plan_draws([batch(1, "30")], Decimal("45.5"))

        assert [take for _, take in plan] == [Decimal("30")]
        assert shortfall == Decimal("15.5000")

    def test_skips_empty_batches(self):
        plan, _ = plan_draws([batch(1, "0"), batch(2, "10")], Decimal("5"))

        assert [b.id for b, _ in plan] == [2]


class TestSettleDebt:

    def test_debt_taken_from_first_amounts(self):
        assert settle_debt(Decimal("30"), [Decimal("20"), Decimal("50")]) == [Decimal("0.0000"), Decimal("40.0000")]

    def test_no_debt(self):
        assert settle_debt(Decimal("0"), [Decimal("20")]) == [Decimal("20.0000")]


class TestPortionsAfterFee:

    def test_fee_trimmed_from_latest_expiring_draw(self):
        soon, late = NOW + timedelta(days=5), NOW + timedelta(days=90)
        draws = [BatchDraw(1, Decimal("60"), soon), BatchDraw(2, Decimal("40"), late)]

        portions = portions_after_fee(draws, Decimal("2.5"))

        assert [(p.amount, p.expiry_date) for p in portions] == [
            (Decimal("60"), soon),
            (Decimal("37.5000"), late),
        ]

    def test_fee_spanning_draws_drops_empty_portions(self):
        draws = [BatchDraw(1, Decimal("10"), NOW), BatchDraw(2, Decimal("1"), None)]

        portions = portions_after_fee(draws, Decimal("3"))

        assert len(portions) == 1
        assert portions[0].amount == Decimal("8.0000")

    def test_no_fee(self):
        draws = [BatchDraw(1, Decimal("10"), NOW)]

        assert portions_after_fee(draws, Decimal("0"))[0].amount == Decimal("10")


class TestWarningWindow:

    def test_smallest_window_entered(self):
        assert warning_window(NOW + timedelta(days=6), NOW, [30, 7, 1]) == 7
        assert warning_window(NOW + timedelta(hours=12), NOW, [30, 7, 1]) == 1
        assert warning_window(NOW + timedelta(days=30), NOW, [30, 7, 1]) == 30

    def test_outside_every_window(self):
        assert warning_window(NOW + timedelta(days=31), NOW, [30, 7, 1]) is None
