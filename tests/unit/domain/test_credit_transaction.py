"""Unit tests for CreditTransaction domain entity"""

from decimal import Decimal
from sqlmodel import SQLModel
import credit_engine.domain  # noqa: F401  registers every table on SQLModel.metadata
from credit_engine.domain.credit_transaction import CreditTransaction, TransactionType


def make_transaction(transaction_type: TransactionType, amount: str = "25.0000", **fields) -> CreditTransaction:
    return CreditTransaction(
        account_id=1,
        tenant_id="tenant_a",
        sequence=1,
        transaction_type=transaction_type,
        amount=Decimal(amount),
        previous_balance=Decimal("100.0000"),
        new_balance=Decimal("75.0000"),
        **fields,
    )


class TestSignedAmount:
    """Effect of each transaction type on the available balance"""

    def test_credit_types_add_to_balance(self):
        for transaction_type in (
            TransactionType.PURCHASE,
            TransactionType.TRANSFER_IN,
            TransactionType.REFUND,
            TransactionType.ADJUSTMENT,
            TransactionType.RELEASE,
        ):
            assert make_transaction(transaction_type).signed_amount == Decimal("25.0000")

    def test_debit_types_subtract_from_balance(self):
        for transaction_type in (
            TransactionType.CONSUMPTION,
            TransactionType.EXPIRY,
            TransactionType.TRANSFER_OUT,
            TransactionType.RESERVATION,
        ):
            assert make_transaction(transaction_type).signed_amount == Decimal("-25.0000")

    def test_committed_reservation_has_no_effect(self):
        """
        Given a consumption that commits a reservation
        When its signed amount is read
        Then it is zero, since the credits left the balance on reserve
        """
        transaction = make_transaction(TransactionType.CONSUMPTION, reservation_id=7)

        assert transaction.signed_amount == Decimal("0")

    def test_release_with_reservation_still_credits(self):
        transaction = make_transaction(TransactionType.RELEASE, reservation_id=7)

        assert transaction.signed_amount == Decimal("25.0000")


class TestTransactionType:

    def test_is_credit(self):
        assert TransactionType.PURCHASE.is_credit
        assert TransactionType.RELEASE.is_credit
        assert not TransactionType.EXPIRY.is_credit
        assert not TransactionType.RESERVATION.is_credit

    def test_values_are_lowercase_strings(self):
        assert TransactionType.TRANSFER_OUT.value == "transfer_out"
        assert TransactionType("consumption") == TransactionType.CONSUMPTION


class TestTableIndexes:

    def test_transactions_are_indexed_by_processing_time(self):
        indexes = {index.name: [column.name for column in index.columns] for index in CreditTransaction.__table__.indexes}

        assert indexes["ix_credit_transactions_processed_at"] == ["processed_at"]

    def test_every_index_names_existing_columns(self):
        for table in SQLModel.metadata.sorted_tables:
            for index in table.indexes:
                assert all(column.table is table for column in index.columns), (table.name, index.name)
