"""Account ledger: the balance rule table and transaction log."""

from decimal import Decimal

import pytest

from mizan.ledger import InvalidAmountError, NotFoundError
from mizan.ledger.account_ledger import balance_delta

from conftest import COGS_ACCOUNT, CUSTOMER, SUPPLIER


@pytest.mark.parametrize(
    "tx_type, account_type, is_debit, expected",
    [
        ("credit", "customer", None, Decimal("-100")),
        ("credit", "supplier", None, Decimal("100")),
        ("credit", "expense", None, Decimal("-100")),
        ("debit", "customer", None, Decimal("100")),
        ("debit", "supplier", None, Decimal("-100")),
        ("debit", "cash", None, Decimal("100")),
        ("journal", "supplier", True, Decimal("100")),
        ("journal", "customer", False, Decimal("-100")),
    ],
)
def test_balance_rule_table(tx_type, account_type, is_debit, expected):
    assert balance_delta(tx_type, account_type, Decimal("100"), is_debit) == expected


def test_journal_requires_side():
    with pytest.raises(ValueError):
        balance_delta("journal", "customer", Decimal("1"))


class TestAccountLedger:
    def test_customer_receipt_lowers_balance(self, ledger):
        ledger.service.record_transaction(CUSTOMER, "debit", "250.00", reference="INV-9")
        tx = ledger.service.record_transaction(CUSTOMER, "credit", 100, payment_method="bank")

        assert tx.payment_method == "bank"
        assert tx.is_debit is None
        assert ledger.service.get_account_balance(CUSTOMER) == Decimal("150.00")

    def test_supplier_credit_raises_balance(self, ledger):
        ledger.service.record_transaction(SUPPLIER, "credit", 80)
        ledger.service.record_transaction(SUPPLIER, "debit", 30)
        assert ledger.service.get_account_balance(SUPPLIER) == Decimal("50.00")

    def test_journal_entry_defaults(self, ledger):
        tx = ledger.service.record_transaction(COGS_ACCOUNT, "journal", "12.5", is_debit=True, notes="قيد تسوية")

        assert tx.payment_method == "journal"
        assert tx.is_debit is True
        assert tx.amount == Decimal("12.50")
        assert ledger.service.get_account_balance(COGS_ACCOUNT) == Decimal("12.50")

    def test_journal_without_side_rolls_back(self, ledger):
        with pytest.raises(ValueError):
            ledger.service.record_transaction(CUSTOMER, "journal", 10)
        assert ledger.service.list_transactions(account_id=CUSTOMER) == []

    @pytest.mark.parametrize("amount", [0, -5, "0.001"])
    def test_non_positive_amount_rejected(self, ledger, amount):
        with pytest.raises(InvalidAmountError):
            ledger.service.record_transaction(CUSTOMER, "debit", amount)
        assert ledger.service.get_account_balance(CUSTOMER) == Decimal("0")
        assert ledger.service.list_transactions(account_id=CUSTOMER) == []

    def test_unknown_account(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.service.record_transaction(999, "debit", 10)
        with pytest.raises(NotFoundError):
            ledger.service.get_account_balance(999)

    def test_list_transactions_filters(self, ledger):
        ledger.service.record_transaction(CUSTOMER, "debit", 10, reference="R-1", date="2026-01-05")
        ledger.service.record_transaction(CUSTOMER, "debit", 20, reference="R-2", date="2026-02-05")
        ledger.service.record_transaction(SUPPLIER, "credit", 30, reference="R-1", date="2026-03-05")

        newest_first = ledger.service.list_transactions(account_id=CUSTOMER)
        assert [t.reference for t in newest_first] == ["R-2", "R-1"]

        by_reference = ledger.service.list_transactions(reference="R-1")
        assert {t.account_id for t in by_reference} == {CUSTOMER, SUPPLIER}

        from mizan.time_utils import parse_iso_datetime
        february = ledger.service.list_transactions(
            date_from=parse_iso_datetime("2026-02-01"),
            date_to=parse_iso_datetime("2026-02-28"),
        )
        assert [t.amount for t in february] == [Decimal("20.00")]
